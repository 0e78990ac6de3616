from __future__ import annotations

from collections.abc import Iterable, Sequence

from keypool.core.errors import ConfigMissingError
from keypool.core.pool.ordering import OrderingStrategy, ShuffleOrdering


def redact(credential: str, visible: int = 4, *, filler: str = "****") -> str:
    if len(credential) <= visible * 2:
        return filler
    return f"{credential[:visible]}{filler}{credential[-visible:]}"


def parse_credentials(value: str | Iterable[str] | None) -> list[str]:
    if value is None:
        return []
    entries = value.split(",") if isinstance(value, str) else list(value)
    parsed: list[str] = []
    for entry in entries:
        item = entry.strip()
        if item and item not in parsed:
            parsed.append(item)
    return parsed


class CredentialPool:
    """Immutable set of upstream credentials plus the policy that orders them per request."""

    def __init__(self, credentials: Sequence[str], ordering: OrderingStrategy | None = None) -> None:
        parsed = parse_credentials(credentials)
        if not parsed:
            raise ConfigMissingError("credentials")
        self._credentials = tuple(parsed)
        self._ordering = ordering or ShuffleOrdering()

    @property
    def credentials(self) -> tuple[str, ...]:
        return self._credentials

    @property
    def ordering(self) -> OrderingStrategy:
        return self._ordering

    async def list_candidates(self, model: str) -> list[str]:
        """Every configured credential exactly once, in this request's try-order."""
        ordered = await self._ordering.order(model, self._credentials)
        if sorted(ordered) != sorted(self._credentials):
            # A strategy must permute, never drop or repeat.
            raise RuntimeError(f"Ordering strategy {self._ordering.name!r} returned an invalid permutation")
        return ordered

    async def mark_claimed(self, model: str, credential: str) -> None:
        await self._ordering.on_claimed(model, self._credentials, self._credentials.index(credential))

    def __len__(self) -> int:
        return len(self._credentials)

    def __contains__(self, credential: object) -> bool:
        return credential in self._credentials
