from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

from keypool.core.balancer.bans import BanList
from keypool.core.balancer.cooldown import CooldownLimiter
from keypool.core.balancer.quota import DailyQuotaCounter
from keypool.core.pool.credentials import redact
from keypool.core.pool.policy import PolicyTable


@dataclass(frozen=True, slots=True)
class CredentialModelStats:
    # Index into the configured pool; redacted keys can collide.
    position: int
    key: str
    model: str
    day: str
    count: int
    error_count: int
    banned: bool
    last_used_at: float | None
    daily_quota: int | None

    @property
    def error_ratio(self) -> float:
        if self.count == 0:
            return 0.0
        return self.error_count / self.count

    @property
    def quota_usage_percent(self) -> float | None:
        if self.daily_quota is None:
            return None
        if self.daily_quota == 0:
            return 100.0
        return min(100.0, self.count / self.daily_quota * 100.0)


@dataclass(frozen=True, slots=True)
class ModelTotals:
    model: str
    count: int
    # None = unbounded
    total_quota: int | None

    @property
    def usage_percent(self) -> float | None:
        if not self.total_quota:
            return None
        return min(100.0, self.count / self.total_quota * 100.0)


class StatisticsAggregator:
    """Read-only rollup over the balancer's state. Never writes to the store."""

    def __init__(
        self,
        credentials: Sequence[str],
        policies: PolicyTable,
        *,
        cooldowns: CooldownLimiter,
        quotas: DailyQuotaCounter,
        bans: BanList,
    ) -> None:
        self._credentials = tuple(credentials)
        self._policies = policies
        self._cooldowns = cooldowns
        self._quotas = quotas
        self._bans = bans

    async def collect(self, now: float, models: Sequence[str] | None = None) -> list[CredentialModelStats]:
        day = self._quotas.day_key(now)
        selected_models = list(models) if models is not None else self._policies.models
        return list(
            await asyncio.gather(
                *(
                    self._collect_one(position, credential, model, day)
                    for position, credential in enumerate(self._credentials)
                    for model in selected_models
                )
            )
        )

    def totals(self, rows: Sequence[CredentialModelStats]) -> list[ModelTotals]:
        counts: dict[str, int] = {}
        for row in rows:
            counts[row.model] = counts.get(row.model, 0) + row.count
        totals: list[ModelTotals] = []
        for model, count in counts.items():
            quota = self._policies.get(model).daily_quota
            total_quota = quota * len(self._credentials) if quota is not None else None
            totals.append(ModelTotals(model=model, count=count, total_quota=total_quota))
        return totals

    async def _collect_one(self, position: int, credential: str, model: str, day: str) -> CredentialModelStats:
        count, error_count, banned, last_used_at = await asyncio.gather(
            self._quotas.count(credential, model, day),
            self._quotas.error_count(credential, model, day),
            self._bans.is_banned(credential, model),
            self._cooldowns.last_used(credential, model),
        )
        return CredentialModelStats(
            position=position,
            key=redact(credential),
            model=model,
            day=day,
            count=count,
            error_count=error_count,
            banned=banned,
            last_used_at=last_used_at,
            daily_quota=self._policies.get(model).daily_quota,
        )
