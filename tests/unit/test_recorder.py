from __future__ import annotations

import anyio
import pytest

from keypool.core.balancer import (
    AdvisoryLock,
    BanList,
    Claim,
    DailyQuotaCounter,
    Outcome,
    UsageRecorder,
    classify_status,
)
from keypool.core.pool import ModelPolicy, PolicyTable
from keypool.core.store import MemoryStore

pytestmark = pytest.mark.unit

DAY = "2025-01-15"


@pytest.fixture
def parts(clock):
    store = MemoryStore(clock=clock)
    policies = PolicyTable({}, ModelPolicy(cooldown_seconds=30))
    quotas = DailyQuotaCounter(store, policies, time_zone="UTC", counter_ttl_seconds=172_800)
    bans = BanList(store, ttl_seconds=600)
    locks = AdvisoryLock(store, ttl_seconds=10)
    recorder = UsageRecorder(quotas=quotas, bans=bans, locks=locks)
    return recorder, quotas, bans, locks


async def _claim(locks: AdvisoryLock, clock) -> Claim:
    token = await locks.acquire("key", "m")
    return Claim(credential="key", model="m", day=DAY, claimed_at=clock(), lock_token=token)


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (200, Outcome.SUCCESS),
        (204, Outcome.SUCCESS),
        (429, Outcome.THROTTLED),
        (400, Outcome.OTHER_FAILURE),
        (500, Outcome.OTHER_FAILURE),
        (302, Outcome.OTHER_FAILURE),
        (None, Outcome.OTHER_FAILURE),
    ],
)
def test_classify_status(status, expected):
    assert classify_status(status) is expected


@pytest.mark.asyncio
async def test_success_counts_and_releases_lock(parts, clock):
    recorder, quotas, bans, locks = parts
    claim = await _claim(locks, clock)

    await recorder.record(claim, Outcome.SUCCESS, latency_ms=12)

    assert await quotas.count("key", "m", DAY) == 1
    assert await quotas.error_count("key", "m", DAY) == 0
    assert not await bans.is_banned("key", "m")
    assert not await locks.is_locked("key", "m")


@pytest.mark.asyncio
async def test_throttled_bans_and_counts_error(parts, clock):
    recorder, quotas, bans, locks = parts
    claim = await _claim(locks, clock)

    await recorder.record(claim, Outcome.THROTTLED)

    assert await bans.is_banned("key", "m")
    assert await quotas.count("key", "m", DAY) == 0
    assert await quotas.error_count("key", "m", DAY) == 1
    assert not await locks.is_locked("key", "m")


@pytest.mark.asyncio
async def test_other_failure_counts_error_only(parts, clock):
    recorder, quotas, bans, locks = parts
    claim = await _claim(locks, clock)

    await recorder.record(claim, Outcome.OTHER_FAILURE)

    assert not await bans.is_banned("key", "m")
    assert await quotas.error_count("key", "m", DAY) == 1
    assert not await locks.is_locked("key", "m")


@pytest.mark.asyncio
async def test_record_completes_inside_cancelled_scope(parts, clock):
    recorder, quotas, _, locks = parts
    claim = await _claim(locks, clock)

    with anyio.CancelScope() as scope:
        scope.cancel()
        await recorder.record(claim, Outcome.OTHER_FAILURE)

    assert await quotas.error_count("key", "m", DAY) == 1
    assert not await locks.is_locked("key", "m")


@pytest.mark.asyncio
async def test_release_without_lock_is_noop(clock):
    store = MemoryStore(clock=clock)
    policies = PolicyTable({}, ModelPolicy(cooldown_seconds=30))
    quotas = DailyQuotaCounter(store, policies, time_zone="UTC", counter_ttl_seconds=60)
    recorder = UsageRecorder(quotas=quotas, bans=BanList(store, ttl_seconds=60))
    claim = Claim(credential="key", model="m", day=DAY, claimed_at=clock())

    await recorder.record(claim, Outcome.SUCCESS)

    assert await quotas.count("key", "m", DAY) == 1
