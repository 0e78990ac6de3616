from __future__ import annotations

# Logical key layout in the shared state store. Every entry carries its own expiry.


def usage_key(model: str, credential: str) -> str:
    return f"usage:{model}:{credential}"


def quota_key(model: str, credential: str, day: str) -> str:
    return f"quota:{model}:{credential}:{day}"


def error_key(model: str, credential: str, day: str) -> str:
    return f"error:{model}:{credential}:{day}"


def ban_key(model: str, credential: str) -> str:
    return f"ban:{model}:{credential}"


def lock_key(model: str, credential: str) -> str:
    return f"lock:{model}:{credential}"


def cursor_key(model: str) -> str:
    return f"cursor:{model}"
