from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response

from keypool.core.clients.upstream import UpstreamUnavailableError
from keypool.dependencies import ProxyContext, get_proxy_context, require_access_token

router = APIRouter(tags=["proxy"])

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


@router.api_route(
    "/{path:path}",
    methods=PROXY_METHODS,
    include_in_schema=False,
    dependencies=[Depends(require_access_token)],
)
async def proxy(
    path: str,
    request: Request,
    context: ProxyContext = Depends(get_proxy_context),
) -> Response:
    body = await request.body()
    try:
        result = await context.service.forward(
            method=request.method,
            path=request.url.path,
            query=request.url.query,
            headers=request.headers,
            body=body,
        )
    except UpstreamUnavailableError as exc:
        return PlainTextResponse(f"Upstream request failed: {exc.message}", status_code=502)

    if result.response is None:
        selection = result.selection
        headers: dict[str, str] = {}
        if selection.retry_after_seconds is not None:
            headers["Retry-After"] = str(selection.retry_after_seconds)
        return PlainTextResponse(selection.error_message or "", status_code=429, headers=headers)

    upstream = result.response
    return Response(
        content=upstream.body,
        status_code=upstream.status_code,
        headers=upstream.headers,
    )
