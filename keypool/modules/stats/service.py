from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from keypool.core.balancer.factory import Balancer
from keypool.core.stats.aggregator import CredentialModelStats, ModelTotals
from keypool.core.utils.time import format_local_timestamp, from_epoch_seconds, now_epoch
from keypool.modules.stats.schemas import CredentialStatsEntry, ModelTotalsEntry, StatsResponse

BAR_GREEN = "#4CAF50"
BAR_YELLOW = "#ffc107"
BAR_RED = "#f44336"


def usage_bar_colors(percent: float) -> tuple[str, str]:
    """Background and text color for a usage bar."""
    if percent >= 80:
        return BAR_RED, "white"
    if percent >= 50:
        return BAR_YELLOW, "#333"
    return BAR_GREEN, "#333"


def error_ratio_class(percent: float) -> str:
    if percent < 10:
        return "error-low"
    if percent < 30:
        return "error-medium"
    return "error-high"


def error_ratio_percent(row: CredentialModelStats) -> float:
    return min(100.0, row.error_ratio * 100.0)


@dataclass(frozen=True, slots=True)
class UsageBarView:
    percent: float
    color: str
    text_color: str

    @classmethod
    def from_percent(cls, percent: float) -> UsageBarView:
        color, text_color = usage_bar_colors(percent)
        return cls(percent=percent, color=color, text_color=text_color)


@dataclass(frozen=True, slots=True)
class StatsRowView:
    model: str
    count: int
    error_count: int
    daily_quota: int | None
    bar: UsageBarView | None
    error_ratio_percent: float
    error_class: str
    banned: bool
    last_used: str


@dataclass(slots=True)
class StatsGroupView:
    key: str
    rows: list[StatsRowView] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TotalsView:
    model: str
    count: int
    total_quota: int | None
    bar: UsageBarView | None


@dataclass(frozen=True, slots=True)
class StatsPage:
    day: str
    time_zone: str
    groups: list[StatsGroupView]
    totals: list[TotalsView]


class StatsService:
    def __init__(
        self,
        balancer: Balancer,
        *,
        time_zone: str,
        clock: Callable[[], float] = now_epoch,
    ) -> None:
        self._balancer = balancer
        self._time_zone = time_zone
        self._clock = clock

    async def get_stats(self) -> StatsResponse:
        now = self._clock()
        rows, totals = await self._collect(now)
        return StatsResponse(
            day=self._balancer.quotas.day_key(now),
            time_zone=self._time_zone,
            generated_at=from_epoch_seconds(now),
            credentials=[
                CredentialStatsEntry(
                    key=row.key,
                    model=row.model,
                    count=row.count,
                    error_count=row.error_count,
                    daily_quota=row.daily_quota,
                    usage_percent=row.quota_usage_percent,
                    error_ratio_percent=error_ratio_percent(row),
                    banned=row.banned,
                    last_used_at=from_epoch_seconds(row.last_used_at),
                )
                for row in rows
            ],
            totals=[
                ModelTotalsEntry(
                    model=total.model,
                    count=total.count,
                    total_quota=total.total_quota,
                    usage_percent=total.usage_percent,
                )
                for total in totals
            ],
        )

    async def get_page(self) -> StatsPage:
        now = self._clock()
        rows, totals = await self._collect(now)
        groups: dict[int, StatsGroupView] = {}
        for row in rows:
            group = groups.setdefault(row.position, StatsGroupView(key=row.key))
            group.rows.append(self._row_view(row))
        return StatsPage(
            day=self._balancer.quotas.day_key(now),
            time_zone=self._time_zone,
            groups=list(groups.values()),
            totals=[
                TotalsView(
                    model=total.model,
                    count=total.count,
                    total_quota=total.total_quota,
                    bar=_bar(total.usage_percent),
                )
                for total in totals
            ],
        )

    async def _collect(self, now: float) -> tuple[list[CredentialModelStats], list[ModelTotals]]:
        aggregator = self._balancer.aggregator
        rows = await aggregator.collect(now)
        return rows, aggregator.totals(rows)

    def _row_view(self, row: CredentialModelStats) -> StatsRowView:
        ratio = error_ratio_percent(row)
        return StatsRowView(
            model=row.model,
            count=row.count,
            error_count=row.error_count,
            daily_quota=row.daily_quota,
            bar=_bar(row.quota_usage_percent),
            error_ratio_percent=ratio,
            error_class=error_ratio_class(ratio),
            banned=row.banned,
            last_used=(
                format_local_timestamp(row.last_used_at, self._time_zone) if row.last_used_at is not None else "Never"
            ),
        )


def _bar(percent: float | None) -> UsageBarView | None:
    if percent is None:
        return None
    return UsageBarView.from_percent(percent)
