from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from keypool.core.clients.http import close_http_client, init_http_client
from keypool.core.config.settings import get_settings
from keypool.core.config.startup_log import log_startup_config
from keypool.core.handlers.exceptions import add_exception_handlers
from keypool.core.middleware import add_api_unhandled_error_middleware, add_request_id_middleware
from keypool.core.store.purge_scheduler import build_store_purge_scheduler
from keypool.dependencies import build_store
from keypool.modules.health import api as health_api
from keypool.modules.metrics import api as metrics_api
from keypool.modules.proxy import api as proxy_api
from keypool.modules.stats import api as stats_api
from keypool.modules.verify import api as verify_api

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    log_startup_config()
    if settings.store_backend == "db":
        from keypool.db.session import init_db

        await init_db()
    store = build_store(settings)
    app.state.store = store
    purge_scheduler = build_store_purge_scheduler(store.backend)
    if purge_scheduler is not None:
        await purge_scheduler.start()
    await init_http_client()
    if not settings.api_keys:
        logger.warning("No upstream credentials configured; proxy requests will fail until KEYPOOL_API_KEYS is set")

    try:
        yield
    finally:
        try:
            await close_http_client()
            if purge_scheduler is not None:
                await purge_scheduler.stop()
        finally:
            if settings.store_backend == "db":
                from keypool.db.session import close_db

                await close_db()


def create_app() -> FastAPI:
    app = FastAPI(title="keypool-lb", version="0.1.0", lifespan=lifespan)

    add_api_unhandled_error_middleware(app)
    add_request_id_middleware(app)
    add_exception_handlers(app)

    app.include_router(health_api.router)
    app.include_router(metrics_api.router)
    app.include_router(stats_api.router)
    app.include_router(stats_api.api_router)
    app.include_router(verify_api.router)
    # Catch-all; must stay last.
    app.include_router(proxy_api.router)

    return app


app = create_app()
