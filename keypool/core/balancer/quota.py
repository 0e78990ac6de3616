from __future__ import annotations

import logging
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from keypool.core.pool.policy import PolicyTable
from keypool.core.store.base import KeyValueStore
from keypool.core.store.keys import error_key, quota_key
from keypool.core.utils.time import local_date

logger = logging.getLogger(__name__)


def day_key(now: float, time_zone: str) -> str:
    return local_date(now, time_zone)


def seconds_until_next_day(now: float, time_zone: str) -> float:
    current = datetime.fromtimestamp(now, tz=ZoneInfo(time_zone))
    next_midnight = datetime.combine(current.date() + timedelta(days=1), datetime.min.time(), tzinfo=current.tzinfo)
    return max(0.0, next_midnight.timestamp() - now)


class DailyQuotaCounter:
    """Per (credential, model, local day) call counters.

    Increments are read-then-write with no atomicity, so concurrent increments can
    lose updates. Quotas are therefore soft ceilings; overshoot is bounded by
    request concurrency.
    """

    def __init__(
        self,
        store: KeyValueStore,
        policies: PolicyTable,
        *,
        time_zone: str,
        counter_ttl_seconds: int,
    ) -> None:
        self._store = store
        self._policies = policies
        self._time_zone = time_zone
        self._counter_ttl_seconds = counter_ttl_seconds

    @property
    def time_zone(self) -> str:
        return self._time_zone

    @property
    def policies(self) -> PolicyTable:
        return self._policies

    def day_key(self, now: float) -> str:
        return day_key(now, self._time_zone)

    async def count(self, credential: str, model: str, day: str) -> int:
        return await self._read(quota_key(model, credential, day))

    async def error_count(self, credential: str, model: str, day: str) -> int:
        return await self._read(error_key(model, credential, day))

    async def is_over_quota(self, credential: str, model: str, day: str) -> bool:
        quota = self._policies.get(model).daily_quota
        if quota is None:
            return False
        return await self.count(credential, model, day) >= quota

    async def increment(self, credential: str, model: str, day: str, success: bool) -> int:
        key = quota_key(model, credential, day) if success else error_key(model, credential, day)
        value = await self._read(key) + 1
        await self._store.put(key, str(value), self._counter_ttl_seconds)
        return value

    async def _read(self, key: str) -> int:
        raw = await self._store.get(key)
        if raw is None:
            return 0
        try:
            return max(0, int(raw))
        except ValueError:
            logger.warning("Ignoring malformed daily counter prefix=%s", key.split(":", 1)[0])
            return 0
