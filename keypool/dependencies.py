from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request

from keypool.core.balancer.factory import Balancer, build_balancer
from keypool.core.config.settings import Settings, get_settings
from keypool.core.store import DatabaseStore, MemoryStore, ResilientStore
from keypool.modules.proxy.service import ProxyService, check_access_token
from keypool.modules.stats.service import StatsService


@dataclass(slots=True)
class ProxyContext:
    service: ProxyService


@dataclass(slots=True)
class StatsContext:
    service: StatsService


def build_store(settings: Settings) -> ResilientStore:
    if settings.store_backend == "memory":
        return ResilientStore(MemoryStore(), timeout_seconds=settings.store_timeout_seconds)
    from keypool.db.session import SessionLocal

    return ResilientStore(DatabaseStore(SessionLocal), timeout_seconds=settings.store_timeout_seconds)


def get_store(request: Request) -> ResilientStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        store = build_store(get_settings())
        request.app.state.store = store
    return store


def get_balancer(request: Request, store: ResilientStore = Depends(get_store)) -> Balancer:
    balancer = getattr(request.app.state, "balancer", None)
    if balancer is None:
        # Raises ConfigMissingError while no credentials are configured; retried on the next request.
        balancer = build_balancer(get_settings(), store)
        request.app.state.balancer = balancer
    return balancer


def require_access_token(request: Request) -> None:
    check_access_token(request.headers, get_settings().access_tokens)


def get_proxy_context(balancer: Balancer = Depends(get_balancer)) -> ProxyContext:
    return ProxyContext(service=ProxyService(balancer))


def get_stats_context(balancer: Balancer = Depends(get_balancer)) -> StatsContext:
    return StatsContext(service=StatsService(balancer, time_zone=get_settings().quota_timezone))
