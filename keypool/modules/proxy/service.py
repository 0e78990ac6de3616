from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass

from keypool.core.balancer.coordinator import SelectionResult
from keypool.core.balancer.factory import Balancer
from keypool.core.balancer.recorder import Outcome, classify_status
from keypool.core.clients.upstream import CREDENTIAL_HEADER, UpstreamResponse, forward_request
from keypool.core.errors import AccessDeniedError
from keypool.core.pool.credentials import redact
from keypool.core.utils.request_id import get_request_id
from keypool.core.utils.time import now_epoch

logger = logging.getLogger(__name__)

UNKNOWN_MODEL = "unknown"

_MODEL_PATH_RE = re.compile(r"models/([^:]+)")


def extract_model(path: str) -> str:
    match = _MODEL_PATH_RE.search(path)
    if match is None:
        return UNKNOWN_MODEL
    return match.group(1)


def check_access_token(headers: Mapping[str, str], allowed: Collection[str]) -> str:
    token = headers.get(CREDENTIAL_HEADER)
    if not token:
        raise AccessDeniedError(400, f"Missing {CREDENTIAL_HEADER} header")
    if token not in allowed:
        raise AccessDeniedError(401, "Unauthorized")
    return token


@dataclass(frozen=True, slots=True)
class ProxyResult:
    selection: SelectionResult
    response: UpstreamResponse | None = None


class ProxyService:
    def __init__(self, balancer: Balancer, *, clock: Callable[[], float] = now_epoch) -> None:
        self._balancer = balancer
        self._clock = clock

    async def forward(
        self,
        *,
        method: str,
        path: str,
        query: str,
        headers: Mapping[str, str],
        body: bytes,
    ) -> ProxyResult:
        model = extract_model(path)
        selection = await self._balancer.coordinator.claim(model, self._clock())
        claim = selection.claim
        if claim is None:
            return ProxyResult(selection=selection)

        logger.info(
            "Forwarding model=%s credential=%s request_id=%s",
            model,
            redact(claim.credential),
            get_request_id(),
        )
        # Anything that ends the attempt without an upstream status, including cancellation, is a failure.
        outcome = Outcome.OTHER_FAILURE
        started = time.monotonic()
        try:
            response = await forward_request(
                method=method,
                path=path,
                query=query,
                headers=headers,
                body=body,
                credential=claim.credential,
            )
            outcome = classify_status(response.status_code)
            return ProxyResult(selection=selection, response=response)
        finally:
            latency_ms = int((time.monotonic() - started) * 1000)
            await self._balancer.recorder.record(claim, outcome, latency_ms=latency_ms)
