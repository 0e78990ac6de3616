from __future__ import annotations

import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from keypool.core.balancer.bans import BanList
from keypool.core.balancer.cooldown import CooldownLimiter
from keypool.core.balancer.coordinator import SelectionCoordinator
from keypool.core.balancer.locks import AdvisoryLock
from keypool.core.balancer.quota import DailyQuotaCounter
from keypool.core.balancer.recorder import UsageRecorder
from keypool.core.config.settings import Settings
from keypool.core.pool.credentials import CredentialPool
from keypool.core.pool.ordering import OrderingStrategy, RoundRobinOrdering, ShuffleOrdering
from keypool.core.pool.policy import PolicyTable
from keypool.core.stats.aggregator import StatisticsAggregator
from keypool.core.store.base import KeyValueStore
from keypool.core.utils.time import now_epoch


@dataclass(slots=True)
class Balancer:
    pool: CredentialPool
    policies: PolicyTable
    coordinator: SelectionCoordinator
    recorder: UsageRecorder
    aggregator: StatisticsAggregator
    quotas: DailyQuotaCounter


def build_ordering(settings: Settings, store: KeyValueStore, rng: random.Random | None = None) -> OrderingStrategy:
    if settings.ordering == "round_robin":
        return RoundRobinOrdering(store, cursor_ttl_seconds=settings.cursor_ttl_seconds)
    return ShuffleOrdering(rng)


def build_balancer(
    settings: Settings,
    store: KeyValueStore,
    *,
    credentials: Sequence[str] | None = None,
    rng: random.Random | None = None,
    clock: Callable[[], float] = now_epoch,
) -> Balancer:
    policies = PolicyTable.from_settings(settings)
    pool = CredentialPool(
        credentials if credentials is not None else settings.api_keys,
        build_ordering(settings, store, rng),
    )
    cooldowns = CooldownLimiter(store, policies, usage_ttl_seconds=settings.usage_ttl_seconds)
    quotas = DailyQuotaCounter(
        store,
        policies,
        time_zone=settings.quota_timezone,
        counter_ttl_seconds=settings.counter_ttl_seconds,
    )
    # A ban shorter than the longest cooldown would let a credential reappear before it cooled down.
    bans = BanList(
        store,
        ttl_seconds=max(settings.ban_ttl_seconds, policies.max_cooldown_seconds()),
        clock=clock,
    )
    locks = AdvisoryLock(store, ttl_seconds=settings.lock_ttl_seconds) if settings.advisory_lock_enabled else None

    coordinator = SelectionCoordinator(pool, cooldowns=cooldowns, quotas=quotas, bans=bans, locks=locks)
    recorder = UsageRecorder(quotas=quotas, bans=bans, locks=locks)
    aggregator = StatisticsAggregator(
        pool.credentials,
        policies,
        cooldowns=cooldowns,
        quotas=quotas,
        bans=bans,
    )
    return Balancer(
        pool=pool,
        policies=policies,
        coordinator=coordinator,
        recorder=recorder,
        aggregator=aggregator,
        quotas=quotas,
    )
