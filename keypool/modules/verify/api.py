from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response, StreamingResponse

from keypool.core.config.settings import get_settings
from keypool.core.errors import api_error
from keypool.modules.verify.service import stream_verification

router = APIRouter(tags=["verify"])


@router.post(
    "/verify",
    responses={
        200: {
            "content": {
                "text/event-stream": {
                    "schema": {"type": "string"},
                }
            }
        }
    },
)
async def verify_credentials() -> Response:
    settings = get_settings()
    if not settings.api_keys:
        return JSONResponse(
            status_code=500,
            content=api_error("config_missing", "No upstream credentials are configured"),
        )
    return StreamingResponse(
        stream_verification(settings.api_keys, delay_seconds=settings.verify_delay_seconds),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
