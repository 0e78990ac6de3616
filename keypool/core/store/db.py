from __future__ import annotations

import time
from collections.abc import Callable

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import Insert

from keypool.core.errors import StoreUnavailableError
from keypool.db.models import KeyValueEntry


class DatabaseStore:
    """Key-value store on a shared SQL table.

    Each operation runs in its own short session, so two workers see each other's
    writes only once committed. That is the consistency level the balancer is
    written against; no row locks or transactions spanning keys are used.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def get(self, key: str) -> str | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(KeyValueEntry.value, KeyValueEntry.expires_at).where(KeyValueEntry.key == key)
                )
                row = result.one_or_none()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(str(exc)) from exc
        if row is None:
            return None
        value, expires_at = row
        if expires_at <= self._clock():
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        expires_at = self._clock() + ttl_seconds
        try:
            async with self._session_factory() as session:
                await session.execute(self._build_upsert_statement(session, key, value, expires_at))
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(str(exc)) from exc

    async def delete(self, key: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(str(exc)) from exc

    async def purge_expired(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(KeyValueEntry)
                    .where(KeyValueEntry.expires_at <= self._clock())
                    .returning(KeyValueEntry.key)
                )
                purged = len(result.scalars().all())
                await session.commit()
                return purged
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(str(exc)) from exc

    def _build_upsert_statement(self, session: AsyncSession, key: str, value: str, expires_at: float) -> Insert:
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            insert_fn = pg_insert
        elif dialect == "sqlite":
            insert_fn = sqlite_insert
        else:
            raise StoreUnavailableError(f"KeyValueEntry upsert unsupported for dialect={dialect!r}")
        statement = insert_fn(KeyValueEntry).values(key=key, value=value, expires_at=expires_at)
        return statement.on_conflict_do_update(
            index_elements=[KeyValueEntry.key],
            set_={"value": value, "expires_at": expires_at},
        )
