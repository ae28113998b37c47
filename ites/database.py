"""Database engine, session factory and the request-scoped session dependency."""

import ssl
from collections.abc import AsyncGenerator
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ites.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


def get_engine_url_and_connect_args(url: str) -> tuple[str, dict[str, Any]]:
    """
    Move libpq-style ``sslmode``/``ssl`` query options into asyncpg connect_args.

    asyncpg rejects them in the URL. ``sslmode=require`` (or ``ssl=true``) turns
    on TLS; certificate checks follow ``settings.database_ssl_verify``.
    """
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    requested = query.pop("sslmode", None), query.pop("ssl", None)
    sslmode = next((v[0] for v in requested if v), None)
    if sslmode is None:
        return url, {}

    url = urlunparse(parsed._replace(query=urlencode(query, doseq=True)))
    if sslmode in ("disable", "false"):
        return url, {}
    ctx = ssl.create_default_context()
    if not settings.database_ssl_verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return url, {"ssl": ctx}


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    Let SQLite honour SAVEPOINT, which audit writes rely on.

    The pysqlite driver issues its own BEGIN lazily and breaks nested
    transactions; take over transaction control instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str) -> AsyncEngine:
    db_url, connect_args = get_engine_url_and_connect_args(url)
    new_engine = create_async_engine(
        db_url,
        echo=settings.log_level == "DEBUG",
        connect_args=connect_args,
    )
    if new_engine.dialect.name == "sqlite":
        enable_sqlite_savepoints(new_engine)
    return new_engine


engine = build_engine(settings.database_url)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Session per request: committed on success, rolled back on any error."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
