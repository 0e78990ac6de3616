from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from keypool.core.config.settings import Settings

OTHER_MODEL_LABEL = "other"


@dataclass(frozen=True, slots=True)
class ModelPolicy:
    cooldown_seconds: int
    daily_quota: int | None = None

    @property
    def unbounded(self) -> bool:
        return self.daily_quota is None


class PolicyTable:
    """Static per-model policy lookup. Unknown models get the default policy."""

    def __init__(self, policies: Mapping[str, ModelPolicy], default: ModelPolicy) -> None:
        self._policies = dict(policies)
        self._default = default

    @classmethod
    def from_settings(cls, settings: Settings) -> PolicyTable:
        policies = {
            model: ModelPolicy(cooldown_seconds=entry.cooldown_seconds, daily_quota=entry.daily_quota)
            for model, entry in settings.model_policies.items()
        }
        default = ModelPolicy(
            cooldown_seconds=settings.default_cooldown_seconds,
            daily_quota=settings.default_daily_quota,
        )
        return cls(policies, default)

    def get(self, model: str) -> ModelPolicy:
        return self._policies.get(model, self._default)

    def metric_label(self, model: str) -> str:
        # Models arrive from client paths; only configured ones get their own series.
        return model if model in self._policies else OTHER_MODEL_LABEL

    @property
    def models(self) -> list[str]:
        return list(self._policies)

    @property
    def default(self) -> ModelPolicy:
        return self._default

    def max_cooldown_seconds(self) -> int:
        cooldowns = [policy.cooldown_seconds for policy in self._policies.values()]
        cooldowns.append(self._default.cooldown_seconds)
        return max(cooldowns)
