from __future__ import annotations

import logging
from enum import Enum

import anyio

from keypool.core.balancer.bans import BanList
from keypool.core.balancer.coordinator import Claim
from keypool.core.balancer.locks import AdvisoryLock
from keypool.core.balancer.quota import DailyQuotaCounter
from keypool.core.metrics import get_metrics
from keypool.core.pool.credentials import redact

logger = logging.getLogger(__name__)

THROTTLED_STATUS_CODES = frozenset({429})


class Outcome(str, Enum):
    SUCCESS = "success"
    THROTTLED = "throttled"
    OTHER_FAILURE = "other_failure"


def classify_status(status_code: int | None) -> Outcome:
    if status_code is None:
        return Outcome.OTHER_FAILURE
    if status_code in THROTTLED_STATUS_CODES:
        return Outcome.THROTTLED
    if 200 <= status_code < 300:
        return Outcome.SUCCESS
    return Outcome.OTHER_FAILURE


class UsageRecorder:
    def __init__(
        self,
        *,
        quotas: DailyQuotaCounter,
        bans: BanList,
        locks: AdvisoryLock | None = None,
    ) -> None:
        self._quotas = quotas
        self._bans = bans
        self._locks = locks

    async def record(self, claim: Claim, outcome: Outcome, *, latency_ms: int | None = None) -> None:
        # Shielded so an aborted client request still books the outcome and frees the lock.
        with anyio.CancelScope(shield=True):
            try:
                await self._apply(claim, outcome)
            finally:
                await self.release(claim)
        get_metrics().observe_outcome(
            model=self._quotas.policies.metric_label(claim.model),
            outcome=outcome.value,
            latency_ms=latency_ms,
        )

    async def release(self, claim: Claim) -> None:
        if self._locks is None or claim.lock_token is None:
            return
        await self._locks.release(claim.credential, claim.model, claim.lock_token)

    async def _apply(self, claim: Claim, outcome: Outcome) -> None:
        match outcome:
            case Outcome.SUCCESS:
                await self._quotas.increment(claim.credential, claim.model, claim.day, success=True)
            case Outcome.THROTTLED:
                logger.warning(
                    "Upstream throttled credential=%s model=%s",
                    redact(claim.credential),
                    claim.model,
                )
                await self._bans.ban(claim.credential, claim.model)
                await self._quotas.increment(claim.credential, claim.model, claim.day, success=False)
            case Outcome.OTHER_FAILURE:
                await self._quotas.increment(claim.credential, claim.model, claim.day, success=False)
