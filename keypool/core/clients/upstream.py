from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal, TypeAlias

import aiohttp

from keypool.core.clients.http import get_http_client
from keypool.core.config.settings import get_settings
from keypool.core.pool.credentials import redact
from keypool.core.utils.request_id import get_request_id

logger = logging.getLogger(__name__)

CREDENTIAL_HEADER = "x-goog-api-key"

# Only the content type travels upstream; everything else a client sends stays here.
FORWARDED_REQUEST_HEADERS = frozenset({"content-type"})
STRIPPED_RESPONSE_HEADERS = frozenset(
    {"transfer-encoding", "connection", "keep-alive", "content-encoding", "content-length"}
)

VERIFY_PROMPT = {"contents": [{"role": "user", "parts": [{"text": "Hello"}]}]}

VerifyStatus: TypeAlias = Literal["GOOD", "BAD", "ERROR"]


class UpstreamUnavailableError(Exception):
    """Transport-level failure talking to the upstream: no HTTP status was received."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass(frozen=True, slots=True)
class UpstreamResponse:
    status_code: int
    headers: dict[str, str]
    body: bytes


@dataclass(frozen=True, slots=True)
class VerifyResult:
    key: str
    status: VerifyStatus
    error: str | None = None

    def to_payload(self) -> dict[str, str]:
        payload = {"key": self.key, "status": self.status}
        if self.error is not None:
            payload["error"] = self.error
        return payload


def build_upstream_url(base_url: str, path: str, query: str = "") -> str:
    url = f"{base_url.rstrip('/')}/{path.lstrip('/')}"
    if query:
        url = f"{url}?{query}"
    return url


def build_upstream_headers(inbound: Mapping[str, str], credential: str) -> dict[str, str]:
    headers = {key: value for key, value in inbound.items() if key.lower() in FORWARDED_REQUEST_HEADERS}
    headers[CREDENTIAL_HEADER] = credential
    return headers


def filter_response_headers(headers: Mapping[str, str]) -> dict[str, str]:
    filtered = {key: value for key, value in headers.items() if key.lower() not in STRIPPED_RESPONSE_HEADERS}
    filtered["Referrer-Policy"] = "no-referrer"
    return filtered


async def forward_request(
    *,
    method: str,
    path: str,
    query: str,
    headers: Mapping[str, str],
    body: bytes,
    credential: str,
) -> UpstreamResponse:
    settings = get_settings()
    session = get_http_client().session
    url = build_upstream_url(settings.upstream_base_url, path, query)
    try:
        async with session.request(
            method,
            url,
            headers=build_upstream_headers(headers, credential),
            data=body or None,
        ) as resp:
            payload = await resp.read()
            return UpstreamResponse(
                status_code=resp.status,
                headers=filter_response_headers(resp.headers),
                body=payload,
            )
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        message = str(exc) or exc.__class__.__name__
        logger.warning(
            "Upstream request failed credential=%s path=%s request_id=%s error=%s",
            redact(credential),
            path,
            get_request_id(),
            message,
        )
        raise UpstreamUnavailableError(message) from exc


def redact_for_verify(credential: str) -> str:
    return redact(credential, 7, filler="......")


async def verify_key(credential: str) -> VerifyResult:
    settings = get_settings()
    url = build_upstream_url(
        settings.upstream_base_url,
        f"/v1beta/models/{settings.verify_model}:generateContent",
    )
    key = redact_for_verify(credential)
    try:
        async with get_http_client().retry_client.post(
            url,
            headers={"Content-Type": "application/json", CREDENTIAL_HEADER: credential},
            json=VERIFY_PROMPT,
        ) as resp:
            if 200 <= resp.status < 300:
                await resp.read()
                return VerifyResult(key=key, status="GOOD")
            return VerifyResult(key=key, status="BAD", error=await _error_message(resp))
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        return VerifyResult(key=key, status="ERROR", error=str(exc) or exc.__class__.__name__)


async def _error_message(resp: aiohttp.ClientResponse) -> str:
    try:
        data = await resp.json(content_type=None)
    except (aiohttp.ClientError, json.JSONDecodeError, UnicodeDecodeError):
        return "Unknown error"
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return "Unknown error"
