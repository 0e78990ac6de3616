from keypool.core.balancer.bans import BanList
from keypool.core.balancer.cooldown import CooldownLimiter
from keypool.core.balancer.coordinator import Claim, SelectionCoordinator, SelectionResult
from keypool.core.balancer.locks import AdvisoryLock
from keypool.core.balancer.quota import DailyQuotaCounter, day_key
from keypool.core.balancer.recorder import Outcome, UsageRecorder, classify_status

__all__ = [
    "AdvisoryLock",
    "BanList",
    "Claim",
    "CooldownLimiter",
    "DailyQuotaCounter",
    "Outcome",
    "SelectionCoordinator",
    "SelectionResult",
    "UsageRecorder",
    "classify_status",
    "day_key",
]
