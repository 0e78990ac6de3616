from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["health"])

LIVENESS_TEXT = "Proxy is Running!"


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
@router.get("/index.html", response_class=PlainTextResponse, include_in_schema=False)
async def liveness() -> str:
    return LIVENESS_TEXT


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
