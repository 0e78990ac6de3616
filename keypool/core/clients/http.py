from __future__ import annotations

from dataclasses import dataclass

import aiohttp
from aiohttp_retry import ExponentialRetry, RetryClient

from keypool.core.config.settings import get_settings

# Only transport failures are retried; an HTTP status from the upstream is an answer.
_VERIFY_RETRY_ATTEMPTS = 2


@dataclass(slots=True)
class HttpClient:
    session: aiohttp.ClientSession
    retry_client: RetryClient


_http_client: HttpClient | None = None


async def init_http_client() -> HttpClient:
    global _http_client
    if _http_client is not None:
        return _http_client

    settings = get_settings()
    connector = aiohttp.TCPConnector(
        limit=settings.http_client_connector_limit,
        limit_per_host=settings.http_client_connector_limit_per_host,
        keepalive_timeout=settings.http_client_keepalive_timeout_seconds,
        ttl_dns_cache=settings.http_client_dns_cache_ttl_seconds,
    )
    session = aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(
            total=settings.upstream_timeout_seconds,
            sock_connect=settings.upstream_connect_timeout_seconds,
        ),
        connector=connector,
        # Picks up HTTP_PROXY / HTTPS_PROXY / NO_PROXY from the environment.
        trust_env=True,
    )
    retry_client = RetryClient(
        client_session=session,
        raise_for_status=False,
        retry_options=ExponentialRetry(
            attempts=_VERIFY_RETRY_ATTEMPTS,
            statuses=set(),
            exceptions={aiohttp.ClientConnectionError},
            retry_all_server_errors=False,
        ),
    )
    _http_client = HttpClient(session=session, retry_client=retry_client)
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is None:
        return
    await _http_client.retry_client.close()
    _http_client = None


def get_http_client() -> HttpClient:
    if _http_client is None:
        raise RuntimeError("HTTP client not initialized")
    return _http_client
