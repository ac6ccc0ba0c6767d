"""Database engine and the single-writer ledger store."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from clinic_ledger.billing.errors import ConflictError, PersistenceError
from clinic_ledger.config import get_settings
from clinic_ledger.core.models import Base

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    return get_settings().database_url


def create_engine_from_settings(url: str | None = None) -> AsyncEngine:
    """Build an async engine; the driver timeout comes from settings."""
    settings = get_settings()
    url = url or get_database_url()
    if url.startswith("sqlite"):
        database = make_url(url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_async_engine(
            url,
            connect_args={"timeout": settings.database_timeout_seconds},
            echo=settings.database_echo,
        )
    return create_async_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=settings.database_timeout_seconds,
        pool_pre_ping=True,
        echo=settings.database_echo,
    )


class LedgerStore:
    """Owns exclusive write access to the relational store.

    Mutations run through ``write()``: one explicit transaction per unit of
    work, serialized by a process-wide lock, committed only when the whole
    block succeeds. Reads run through ``read()`` and only ever see committed
    rows.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        self._write_lock = asyncio.Lock()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[AsyncSession]:
        async with self._write_lock:
            async with self._session_factory() as session:
                try:
                    async with session.begin():
                        yield session
                except IntegrityError as exc:
                    logger.warning("Write rejected by store constraint: %s", exc.orig)
                    raise ConflictError(
                        "The change conflicts with existing ledger data",
                        {"constraint": str(exc.orig)},
                    ) from exc
                except SQLAlchemyError as exc:
                    logger.error("Write transaction failed: %s", exc)
                    raise PersistenceError("Ledger store unavailable; nothing was saved") from exc

    @asynccontextmanager
    async def read(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
            except SQLAlchemyError as exc:
                logger.error("Read failed: %s", exc)
                raise PersistenceError("Ledger store unavailable") from exc

    async def create_all(self) -> None:
        """Create all tables (dev only; production uses migrations)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


@lru_cache
def get_store() -> LedgerStore:
    return LedgerStore(create_engine_from_settings())


async def init_db() -> LedgerStore:
    store = get_store()
    await store.create_all()
    logger.info("Ledger tables ready at %s", get_database_url())
    return store
