from __future__ import annotations

import logging
from collections.abc import Callable

from keypool.core.pool.credentials import redact
from keypool.core.store.base import KeyValueStore
from keypool.core.store.keys import ban_key
from keypool.core.utils.time import now_epoch

logger = logging.getLogger(__name__)


class BanList:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl_seconds: int,
        clock: Callable[[], float] = now_epoch,
    ) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    async def is_banned(self, credential: str, model: str, now: float | None = None) -> bool:
        # Presence is the ban; the stored expiry only feeds retry hints.
        return await self._store.get(ban_key(model, credential)) is not None

    async def remaining_seconds(self, credential: str, model: str, now: float) -> float:
        raw = await self._store.get(ban_key(model, credential))
        if raw is None:
            return 0.0
        try:
            expires_at = float(raw)
        except ValueError:
            return float(self._ttl_seconds)
        return max(0.0, expires_at - now)

    async def ban(self, credential: str, model: str, ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._ttl_seconds
        expires_at = self._clock() + ttl
        await self._store.put(ban_key(model, credential), repr(float(expires_at)), ttl)
        logger.info("Banned credential=%s model=%s ttl_seconds=%s", redact(credential), model, ttl)
