from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from keypool.core.config.settings import get_settings
from keypool.core.store.base import KeyValueStore

logger = logging.getLogger(__name__)


@runtime_checkable
class PurgeableStore(Protocol):
    async def purge_expired(self) -> int: ...


@dataclass(slots=True)
class StorePurgeScheduler:
    store: PurgeableStore
    interval_seconds: float
    enabled: bool
    _task: asyncio.Task[None] | None = None
    _stop: asyncio.Event = field(default_factory=asyncio.Event)

    async def start(self) -> None:
        if not self.enabled:
            return
        if self._task and not self._task.done():
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop.set()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def purge_once(self) -> int:
        purged = await self.store.purge_expired()
        if purged:
            logger.debug("Purged expired state entries count=%s", purged)
        return purged

    async def _run_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
            else:
                return
            try:
                await self.purge_once()
            except Exception:
                logger.exception("State store purge failed")


def build_store_purge_scheduler(backend: KeyValueStore) -> StorePurgeScheduler | None:
    if not isinstance(backend, PurgeableStore):
        return None
    settings = get_settings()
    return StorePurgeScheduler(
        store=backend,
        interval_seconds=settings.store_purge_interval_seconds,
        enabled=settings.store_purge_interval_seconds > 0,
    )
