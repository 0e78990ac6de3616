from __future__ import annotations

import time
from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def now_epoch() -> float:
    return time.time()


def local_date(now: float, time_zone: str) -> str:
    # Calendar date in a fixed zone, so "today" does not depend on where the process runs.
    return datetime.fromtimestamp(now, tz=ZoneInfo(time_zone)).strftime("%Y-%m-%d")


def format_local_timestamp(value: float, time_zone: str) -> str:
    return datetime.fromtimestamp(value, tz=ZoneInfo(time_zone)).strftime("%Y-%m-%d %H:%M:%S")


def from_epoch_seconds(value: int | float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)
