from __future__ import annotations

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool


def to_asyncpg_url(postgres_url: str) -> tuple[str, str | None]:
    """
    Hosting providers hand out `postgres://...?sslmode=require`; asyncpg wants the
    `postgresql+asyncpg` driver name and takes ssl as a connect argument instead.
    """
    url = make_url(postgres_url)
    sslmode = url.query.get("sslmode")
    if isinstance(sslmode, tuple):
        sslmode = sslmode[-1]
    url = url.difference_update_query(["sslmode"]).set(drivername="postgresql+asyncpg")
    return url.render_as_string(hide_password=False), sslmode


def create_engine(postgres_url: str, ssl: str | None = "require") -> AsyncEngine | None:
    if not postgres_url:
        return None
    url, sslmode = to_asyncpg_url(postgres_url)
    ssl = sslmode or ssl
    connect_args = {"ssl": ssl} if ssl and ssl != "disable" else {}
    # Connection lifecycle belongs to the driver; no pool is kept between requests.
    return create_async_engine(url, pool_pre_ping=True, poolclass=NullPool, connect_args=connect_args)
