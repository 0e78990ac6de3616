from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import Field

from keypool.modules.shared.schemas import ApiModel


class CredentialStatsEntry(ApiModel):
    key: str
    model: str
    count: int
    error_count: int
    daily_quota: int | None = None
    usage_percent: float | None = None
    error_ratio_percent: float
    banned: bool
    last_used_at: datetime | None = None


class ModelTotalsEntry(ApiModel):
    model: str
    count: int
    total_quota: int | None = None
    usage_percent: float | None = None


class StatsResponse(ApiModel):
    day: str
    time_zone: str
    generated_at: datetime
    credentials: List[CredentialStatsEntry] = Field(default_factory=list)
    totals: List[ModelTotalsEntry] = Field(default_factory=list)
