from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from typing import Protocol

from keypool.core.store.base import KeyValueStore
from keypool.core.store.keys import cursor_key

logger = logging.getLogger(__name__)


class OrderingStrategy(Protocol):
    name: str

    async def order(self, model: str, credentials: Sequence[str]) -> list[str]: ...

    async def on_claimed(self, model: str, credentials: Sequence[str], index: int) -> None: ...


class ShuffleOrdering:
    """Independent uniform permutation per request.

    Many concurrent stateless requests rarely converge on the same first candidate.
    """

    name = "shuffle"

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.SystemRandom()

    async def order(self, model: str, credentials: Sequence[str]) -> list[str]:
        ordered = list(credentials)
        self._rng.shuffle(ordered)
        return ordered

    async def on_claimed(self, model: str, credentials: Sequence[str], index: int) -> None:
        return None


class RoundRobinOrdering:
    """Starts one past the last claimed index, kept per model in the shared store."""

    name = "round_robin"

    def __init__(self, store: KeyValueStore, *, cursor_ttl_seconds: int) -> None:
        self._store = store
        self._cursor_ttl_seconds = cursor_ttl_seconds

    async def order(self, model: str, credentials: Sequence[str]) -> list[str]:
        count = len(credentials)
        if count == 0:
            return []
        last_index = await self._last_index(model)
        start = (last_index + 1) % count
        return [credentials[(start + offset) % count] for offset in range(count)]

    async def on_claimed(self, model: str, credentials: Sequence[str], index: int) -> None:
        await self._store.put(cursor_key(model), str(index), self._cursor_ttl_seconds)

    async def _last_index(self, model: str) -> int:
        raw = await self._store.get(cursor_key(model))
        if raw is None:
            return 0
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring malformed round-robin cursor model=%s", model)
            return 0
