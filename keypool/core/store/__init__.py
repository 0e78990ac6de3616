from keypool.core.store.base import KeyValueStore, ResilientStore
from keypool.core.store.db import DatabaseStore
from keypool.core.store.memory import MemoryStore

__all__ = [
    "DatabaseStore",
    "KeyValueStore",
    "MemoryStore",
    "ResilientStore",
]
