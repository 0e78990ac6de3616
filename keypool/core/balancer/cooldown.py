from __future__ import annotations

import logging

from keypool.core.pool.policy import PolicyTable
from keypool.core.store.base import KeyValueStore
from keypool.core.store.keys import usage_key

logger = logging.getLogger(__name__)


class CooldownLimiter:
    def __init__(self, store: KeyValueStore, policies: PolicyTable, *, usage_ttl_seconds: int) -> None:
        self._store = store
        self._policies = policies
        # The record must outlive the longest cooldown or it would expire while still relevant.
        self._usage_ttl_seconds = max(usage_ttl_seconds, policies.max_cooldown_seconds())

    async def last_used(self, credential: str, model: str) -> float | None:
        raw = await self._store.get(usage_key(model, credential))
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            logger.warning("Ignoring malformed usage timestamp model=%s", model)
            return None

    async def remaining_seconds(self, credential: str, model: str, now: float) -> float:
        last_used = await self.last_used(credential, model)
        if last_used is None:
            return 0.0
        cooldown = self._policies.get(model).cooldown_seconds
        return max(0.0, cooldown - (now - last_used))

    async def is_cooling_down(self, credential: str, model: str, now: float) -> bool:
        return await self.remaining_seconds(credential, model, now) > 0

    async def mark_used(self, credential: str, model: str, now: float) -> None:
        await self._store.put(usage_key(model, credential), repr(float(now)), self._usage_ttl_seconds)
