from __future__ import annotations

from uuid import uuid4

from keypool.core.store.base import KeyValueStore
from keypool.core.store.keys import lock_key


class AdvisoryLock:
    """Short-lived claim marker for a (credential, model) pair.

    Narrows the double-claim window between concurrent requests but cannot close
    it: there is no compare-and-swap, so two callers may still both acquire. The
    TTL bounds how long a crashed holder can idle a credential.
    """

    def __init__(self, store: KeyValueStore, *, ttl_seconds: int) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds

    async def is_locked(self, credential: str, model: str) -> bool:
        return await self._store.get(lock_key(model, credential)) is not None

    async def acquire(self, credential: str, model: str) -> str:
        token = uuid4().hex
        await self._store.put(lock_key(model, credential), token, self._ttl_seconds)
        return token

    async def release(self, credential: str, model: str, token: str) -> None:
        key = lock_key(model, credential)
        current = await self._store.get(key)
        # Leave another holder's lock alone; it expires on its own.
        if current is not None and current != token:
            return
        await self._store.delete(key)
