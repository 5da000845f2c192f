from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import sqlalchemy as sa
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from postgrest import APIError
from sqlalchemy.ext.asyncio import AsyncEngine
from supabase import AsyncClient

from db.seed import seed as seed_db
from services.dashboard.app import observability
from services.dashboard.app.clients import create_supabase_admin, create_supabase_client
from services.dashboard.app.db import create_engine
from services.dashboard.app.invoices import list_invoices
from services.dashboard.app.logging import configure_logging, logger
from services.dashboard.app.schemas import ErrorResponse, InvoiceAmount, SeedResponse
from services.dashboard.app.settings import SETTINGS, DashboardSettings


_UNSET: Any = object()


def _error_message(e: Exception) -> str:
    # The raw message reaches the caller; this mirrors what the dashboard front end displays.
    if isinstance(e, APIError) and e.message:
        return e.message
    return str(e) or type(e).__name__


def _error(e: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content=ErrorResponse(error=_error_message(e)).model_dump())


async def admin_client(app: FastAPI) -> AsyncClient:
    client = app.state.supabase_admin
    if client is None:
        s: DashboardSettings = app.state.settings
        client = await create_supabase_admin(s.supabase_url, s.supabase_service_role_key)
        app.state.supabase_admin = client
    return client


async def anon_client(app: FastAPI) -> AsyncClient:
    client = app.state.supabase_anon
    if client is None:
        s: DashboardSettings = app.state.settings
        client = await create_supabase_client(s.supabase_url, s.supabase_anon_key)
        app.state.supabase_anon = client
    return client


def create_app(
    *,
    settings: DashboardSettings = SETTINGS,
    sql_engine: AsyncEngine | None = _UNSET,
    supabase_admin: AsyncClient | None = None,
    supabase_anon: AsyncClient | None = None,
) -> FastAPI:
    """
    Build the dashboard API. Collaborators are created here (or injected) and kept on `app.state`;
    Supabase clients are built on first use so missing credentials fail the request, not startup.
    """
    if sql_engine is _UNSET:
        sql_engine = create_engine(settings.postgres_url, settings.postgres_ssl)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if app.state.sql_engine is not None:
            await app.state.sql_engine.dispose()

    app = FastAPI(title="Invoices Dashboard API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.sql_engine = sql_engine
    app.state.supabase_admin = supabase_admin
    app.state.supabase_anon = supabase_anon

    configure_logging(settings.log_level)
    if settings.otel_enabled:
        observability.setup_tracing(app, service_name="dashboard", engine=sql_engine)
    observability.add_metrics_middleware(app, service_name="dashboard")

    @app.get("/healthz")
    async def healthz(request: Request) -> Any:
        engine = request.app.state.sql_engine
        if engine is not None:
            try:
                async with engine.connect() as conn:
                    await conn.execute(sa.text("SELECT 1"))
            except Exception as e:  # noqa: BLE001
                logger.warning("healthz_postgres_unreachable", error=str(e), error_type=type(e).__name__)
                return JSONResponse(status_code=503, content={"ok": False})
        return {"ok": True}

    @app.get("/query", response_model=list[InvoiceAmount], responses={500: {"model": ErrorResponse}})
    async def query(request: Request) -> Any:
        state = request.app.state
        tier = anon_client if state.settings.query_client_tier == "anon" else admin_client
        try:
            return await list_invoices(state.sql_engine, lambda: tier(request.app))
        except Exception as e:  # noqa: BLE001
            logger.exception("invoice_query_error", error=_error_message(e))
            return _error(e)

    @app.get("/seed", response_model=SeedResponse, responses={500: {"model": ErrorResponse}})
    async def seed(request: Request) -> Any:
        try:
            client = await admin_client(request.app)
            reports = await seed_db(client)
        except Exception as e:  # noqa: BLE001
            logger.exception("seed_error", error=_error_message(e))
            return _error(e)

        for r in reports:
            if not r.upserted:
                observability.SEED_UPSERT_ERROR_TOTAL.labels(r.table).inc()
        return SeedResponse(message="Database seeded successfully")

    return app


app = create_app()
