from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence

from keypool.core.clients.upstream import VerifyResult, verify_key
from keypool.core.utils.sse import format_sse_data

logger = logging.getLogger(__name__)


async def stream_verification(
    credentials: Sequence[str],
    *,
    delay_seconds: float,
    verify: Callable[[str], Awaitable[VerifyResult]] | None = None,
) -> AsyncIterator[str]:
    """Checks each credential once, in order, pausing between upstream calls."""
    check = verify or verify_key
    for index, credential in enumerate(credentials):
        if index and delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        result = await check(credential)
        if result.status != "GOOD":
            logger.warning("Credential check failed key=%s status=%s", result.key, result.status)
        yield format_sse_data(result.to_payload())
