from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field

from keypool.core.balancer.bans import BanList
from keypool.core.balancer.cooldown import CooldownLimiter
from keypool.core.balancer.locks import AdvisoryLock
from keypool.core.balancer.quota import DailyQuotaCounter, seconds_until_next_day
from keypool.core.metrics import get_metrics
from keypool.core.pool.credentials import CredentialPool, redact

logger = logging.getLogger(__name__)

SKIP_BANNED = "banned"
SKIP_LOCKED = "locked"
SKIP_QUOTA = "quota_exceeded"
SKIP_COOLDOWN = "cooldown"


@dataclass(frozen=True, slots=True)
class Claim:
    credential: str
    model: str
    day: str
    claimed_at: float
    lock_token: str | None = None


@dataclass(slots=True)
class SelectionResult:
    claim: Claim | None
    error_message: str | None = None
    reason_code: str | None = None
    retry_after_seconds: int | None = None
    skipped: dict[str, int] = field(default_factory=dict)

    @property
    def available(self) -> bool:
        return self.claim is not None


class SelectionCoordinator:
    """Picks the first eligible credential for a model and claims it.

    Every read is a best-effort view of an eventually-consistent store, so two
    concurrent claims may both see the same credential as eligible. That double
    use is tolerated; the advisory lock only makes it less likely.
    """

    def __init__(
        self,
        pool: CredentialPool,
        *,
        cooldowns: CooldownLimiter,
        quotas: DailyQuotaCounter,
        bans: BanList,
        locks: AdvisoryLock | None = None,
    ) -> None:
        self._pool = pool
        self._cooldowns = cooldowns
        self._quotas = quotas
        self._bans = bans
        self._locks = locks

    @property
    def pool(self) -> CredentialPool:
        return self._pool

    async def claim(self, model: str, now: float) -> SelectionResult:
        day = self._quotas.day_key(now)
        candidates = await self._pool.list_candidates(model)
        label = self._quotas.policies.metric_label(model)
        skipped: Counter[str] = Counter()
        waits: list[float] = []

        for credential in candidates:
            reason = await self._ineligibility_reason(credential, model, day, now)
            if reason is None:
                claim = await self._take(credential, model, day, now)
                get_metrics().observe_claim(model=label, outcome="claimed")
                logger.debug(
                    "Claimed credential=%s model=%s skipped=%s",
                    redact(credential),
                    model,
                    dict(skipped),
                )
                return SelectionResult(claim=claim, skipped=dict(skipped))
            skipped[reason] += 1
            get_metrics().observe_skip(model=label, reason=reason)
            if reason == SKIP_COOLDOWN:
                waits.append(await self._cooldowns.remaining_seconds(credential, model, now))
            elif reason == SKIP_BANNED:
                # A ban still present past its recorded expiry is about to lapse.
                waits.append(max(1.0, await self._bans.remaining_seconds(credential, model, now)))

        get_metrics().observe_claim(model=label, outcome="not_available")
        retry_after = self._retry_after(skipped, waits, now)
        # Exhaustion is the steady state under load, not a fault.
        logger.info(
            "No eligible credential model=%s candidates=%s skipped=%s retry_after=%s",
            model,
            len(candidates),
            dict(skipped),
            retry_after,
        )
        return SelectionResult(
            claim=None,
            error_message=f"All keys for {model} are rate-limited. Try again later.",
            reason_code=_dominant_reason(skipped),
            retry_after_seconds=retry_after,
            skipped=dict(skipped),
        )

    async def _ineligibility_reason(self, credential: str, model: str, day: str, now: float) -> str | None:
        if await self._bans.is_banned(credential, model, now):
            return SKIP_BANNED
        # A locked credential is in flight no matter when it was last confirmed used.
        if self._locks is not None and await self._locks.is_locked(credential, model):
            return SKIP_LOCKED
        if await self._quotas.is_over_quota(credential, model, day):
            return SKIP_QUOTA
        if await self._cooldowns.is_cooling_down(credential, model, now):
            return SKIP_COOLDOWN
        return None

    async def _take(self, credential: str, model: str, day: str, now: float) -> Claim:
        lock_token = None
        if self._locks is not None:
            lock_token = await self._locks.acquire(credential, model)
        await self._pool.mark_claimed(model, credential)
        await self._cooldowns.mark_used(credential, model, now)
        return Claim(credential=credential, model=model, day=day, claimed_at=now, lock_token=lock_token)

    def _retry_after(self, skipped: Counter[str], waits: list[float], now: float) -> int | None:
        hints: list[float] = [wait for wait in waits if wait > 0]
        if skipped.get(SKIP_LOCKED) and self._locks is not None:
            hints.append(1.0)
        if skipped.get(SKIP_QUOTA):
            hints.append(seconds_until_next_day(now, self._quotas.time_zone))
        if not hints:
            return None
        return max(1, math.ceil(min(hints)))


def _dominant_reason(skipped: Counter[str]) -> str:
    if not skipped:
        return "no_candidates"
    reason, _ = skipped.most_common(1)[0]
    return reason
