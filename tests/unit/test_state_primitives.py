from __future__ import annotations

import pytest

from keypool.core.balancer import AdvisoryLock, BanList, CooldownLimiter, DailyQuotaCounter, day_key
from keypool.core.balancer.quota import seconds_until_next_day
from keypool.core.pool import ModelPolicy, PolicyTable
from keypool.core.store import MemoryStore

pytestmark = pytest.mark.unit

LA = "America/Los_Angeles"
# 2025-01-15T08:00:00Z is local midnight in Los Angeles (UTC-8 in January).
LA_MIDNIGHT = 1_736_928_000.0
UTC_MIDNIGHT = 1_736_899_200.0


def _policies(**models: ModelPolicy) -> PolicyTable:
    return PolicyTable(models, ModelPolicy(cooldown_seconds=30))


def test_day_key_changes_at_local_midnight_not_utc():
    before, after = LA_MIDNIGHT - 1, LA_MIDNIGHT

    assert day_key(before, "UTC") == day_key(after, "UTC") == "2025-01-15"
    assert day_key(before, LA) == "2025-01-14"
    assert day_key(after, LA) == "2025-01-15"


def test_day_key_ignores_utc_midnight_for_offset_zone():
    before, after = UTC_MIDNIGHT - 1, UTC_MIDNIGHT

    assert day_key(before, "UTC") != day_key(after, "UTC")
    assert day_key(before, LA) == day_key(after, LA) == "2025-01-14"


def test_seconds_until_next_day():
    assert seconds_until_next_day(LA_MIDNIGHT - 1, LA) == pytest.approx(1.0)
    assert seconds_until_next_day(LA_MIDNIGHT, LA) == pytest.approx(86_400.0)


@pytest.mark.asyncio
async def test_cooldown_window_starts_at_mark_used(clock):
    store = MemoryStore(clock=clock)
    limiter = CooldownLimiter(store, _policies(m=ModelPolicy(cooldown_seconds=10)), usage_ttl_seconds=3600)
    start = clock()

    assert not await limiter.is_cooling_down("key", "m", start)
    await limiter.mark_used("key", "m", start)

    assert await limiter.is_cooling_down("key", "m", start + 9.9)
    assert await limiter.remaining_seconds("key", "m", start + 4) == pytest.approx(6.0)
    assert not await limiter.is_cooling_down("key", "m", start + 10)
    assert await limiter.last_used("key", "m") == start


@pytest.mark.asyncio
async def test_cooldown_is_per_model(clock):
    store = MemoryStore(clock=clock)
    limiter = CooldownLimiter(store, _policies(a=ModelPolicy(cooldown_seconds=60)), usage_ttl_seconds=3600)
    await limiter.mark_used("key", "a", clock())

    assert await limiter.is_cooling_down("key", "a", clock() + 1)
    assert not await limiter.is_cooling_down("key", "b", clock() + 1)


@pytest.mark.asyncio
async def test_usage_record_outlives_longest_cooldown(clock):
    store = MemoryStore(clock=clock)
    limiter = CooldownLimiter(store, _policies(slow=ModelPolicy(cooldown_seconds=7200)), usage_ttl_seconds=60)
    start = clock()
    await limiter.mark_used("key", "slow", start)

    clock.advance(3600)

    assert await limiter.is_cooling_down("key", "slow", clock())


@pytest.mark.asyncio
async def test_daily_counter_separates_successes_and_errors(clock):
    store = MemoryStore(clock=clock)
    counter = DailyQuotaCounter(store, _policies(), time_zone=LA, counter_ttl_seconds=172_800)
    day = counter.day_key(clock())

    await counter.increment("key", "m", day, success=True)
    await counter.increment("key", "m", day, success=True)
    await counter.increment("key", "m", day, success=False)

    assert await counter.count("key", "m", day) == 2
    assert await counter.error_count("key", "m", day) == 1
    assert await counter.count("key", "m", "1999-01-01") == 0


@pytest.mark.asyncio
async def test_over_quota_after_q_successes(clock):
    store = MemoryStore(clock=clock)
    counter = DailyQuotaCounter(
        store,
        _policies(m=ModelPolicy(cooldown_seconds=0, daily_quota=3)),
        time_zone=LA,
        counter_ttl_seconds=172_800,
    )
    day = counter.day_key(clock())

    for _ in range(3):
        assert not await counter.is_over_quota("key", "m", day)
        await counter.increment("key", "m", day, success=True)

    assert await counter.is_over_quota("key", "m", day)


@pytest.mark.asyncio
async def test_unbounded_quota_is_never_exceeded(clock):
    store = MemoryStore(clock=clock)
    counter = DailyQuotaCounter(store, _policies(), time_zone=LA, counter_ttl_seconds=172_800)
    day = counter.day_key(clock())
    await store.put(f"quota:m:key:{day}", "1000000", ttl_seconds=60)

    assert not await counter.is_over_quota("key", "m", day)


@pytest.mark.asyncio
async def test_ban_repeated_extends_from_last_call(clock):
    store = MemoryStore(clock=clock)
    bans = BanList(store, ttl_seconds=10)

    await bans.ban("key", "m")
    clock.advance(6)
    await bans.ban("key", "m")
    clock.advance(6)
    assert await bans.is_banned("key", "m")

    clock.advance(4)
    assert not await bans.is_banned("key", "m")


@pytest.mark.asyncio
async def test_ban_is_scoped_to_model(clock):
    store = MemoryStore(clock=clock)
    bans = BanList(store, ttl_seconds=10)

    await bans.ban("key", "a")

    assert await bans.is_banned("key", "a")
    assert not await bans.is_banned("key", "b")
    assert not await bans.is_banned("other", "a")


@pytest.mark.asyncio
async def test_ban_remaining_seconds_counts_down_from_last_ban(clock):
    store = MemoryStore(clock=clock)
    bans = BanList(store, ttl_seconds=10, clock=clock)

    assert await bans.remaining_seconds("key", "m", clock()) == 0.0

    await bans.ban("key", "m")
    clock.advance(4)

    assert await bans.remaining_seconds("key", "m", clock()) == pytest.approx(6.0)


@pytest.mark.asyncio
async def test_lock_release_only_clears_own_token(clock):
    store = MemoryStore(clock=clock)
    locks = AdvisoryLock(store, ttl_seconds=10)

    first = await locks.acquire("key", "m")
    second = await locks.acquire("key", "m")
    await locks.release("key", "m", first)
    assert await locks.is_locked("key", "m")

    await locks.release("key", "m", second)
    assert not await locks.is_locked("key", "m")


@pytest.mark.asyncio
async def test_abandoned_lock_expires(clock):
    store = MemoryStore(clock=clock)
    locks = AdvisoryLock(store, ttl_seconds=10)

    await locks.acquire("key", "m")
    clock.advance(10)

    assert not await locks.is_locked("key", "m")
