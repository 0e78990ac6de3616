from __future__ import annotations

import logging
from typing import Protocol

import anyio
from sqlalchemy.exc import SQLAlchemyError

from keypool.core.errors import StoreUnavailableError
from keypool.core.metrics import get_metrics

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Eventually-consistent key-value store with per-entry expiry.

    No compare-and-swap, no transactions and no read-your-own-write guarantee
    across concurrent callers. Values are strings.
    """

    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...


_DEGRADED_ERRORS = (StoreUnavailableError, SQLAlchemyError, OSError, TimeoutError)


class ResilientStore:
    """Bounds every store operation with a timeout and degrades to "no information".

    A failed or slow ``get`` reads as a missing entry; failed writes are dropped.
    The fairness layer going away must never take the proxying path with it.
    """

    def __init__(self, backend: KeyValueStore, *, timeout_seconds: float) -> None:
        self._backend = backend
        self._timeout_seconds = timeout_seconds

    @property
    def backend(self) -> KeyValueStore:
        return self._backend

    async def get(self, key: str) -> str | None:
        try:
            with anyio.fail_after(self._timeout_seconds):
                return await self._backend.get(key)
        except _DEGRADED_ERRORS as exc:
            self._degraded("get", key, exc)
            return None

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            with anyio.fail_after(self._timeout_seconds):
                await self._backend.put(key, value, ttl_seconds)
        except _DEGRADED_ERRORS as exc:
            self._degraded("put", key, exc)

    async def delete(self, key: str) -> None:
        try:
            with anyio.fail_after(self._timeout_seconds):
                await self._backend.delete(key)
        except _DEGRADED_ERRORS as exc:
            self._degraded("delete", key, exc)

    def _degraded(self, operation: str, key: str, exc: BaseException) -> None:
        reason = "timeout" if isinstance(exc, TimeoutError) else "unavailable"
        get_metrics().observe_store_error(operation=operation, reason=reason)
        # Keys embed credentials; only the prefix is safe to log.
        logger.warning(
            "State store %s degraded to default prefix=%s reason=%s error=%s",
            operation,
            key.split(":", 1)[0],
            reason,
            type(exc).__name__,
        )
