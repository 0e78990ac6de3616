from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from keypool.dependencies import StatsContext, get_stats_context
from keypool.modules.stats.schemas import StatsResponse

router = APIRouter(tags=["stats"])
api_router = APIRouter(prefix="/api", tags=["stats"])

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parents[2] / "templates"))


@router.get("/stats", response_class=HTMLResponse, include_in_schema=False)
async def stats_page(
    request: Request,
    context: StatsContext = Depends(get_stats_context),
) -> HTMLResponse:
    page = await context.service.get_page()
    return templates.TemplateResponse(
        request=request,
        name="stats.html",
        context={"page": page},
        headers={"Cache-Control": "no-cache"},
    )


@api_router.get("/stats", response_model=StatsResponse)
async def get_stats(
    context: StatsContext = Depends(get_stats_context),
) -> StatsResponse:
    return await context.service.get_stats()
