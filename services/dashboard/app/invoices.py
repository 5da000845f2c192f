from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import sqlalchemy as sa
from postgrest import APIError
from sqlalchemy.ext.asyncio import AsyncEngine
from supabase import AsyncClient

from services.dashboard.app.logging import logger
from services.dashboard.app.observability import QUERY_FALLBACK_TOTAL


INVOICE_AMOUNT = 666

ClientFactory = Callable[[], Awaitable[AsyncClient]]

invoices = sa.table(
    "invoices",
    sa.column("id"),
    sa.column("customer_id"),
    sa.column("amount"),
)
customers = sa.table(
    "customers",
    sa.column("id"),
    sa.column("name"),
)


def invoices_by_amount(amount: int) -> sa.Select:
    return (
        sa.select(invoices.c.amount, customers.c.name)
        .select_from(invoices.join(customers, invoices.c.customer_id == customers.c.id))
        .where(invoices.c.amount == amount)
    )


def join_customer_names(invoice_rows: list[dict[str, Any]], customer_rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Pair each invoice with its customer's name; unmatched customers yield `name=None`."""
    names = {c["id"]: c.get("name") for c in customer_rows}
    return [{"amount": inv["amount"], "name": names.get(inv["customer_id"])} for inv in invoice_rows]


async def fetch_with_sql(engine: AsyncEngine, amount: int) -> list[dict[str, Any]]:
    async with engine.connect() as conn:
        rows = (await conn.execute(invoices_by_amount(amount))).mappings().all()
    return [dict(r) for r in rows]


async def fetch_with_rpc(client: AsyncClient, amount: int) -> list[dict[str, Any]]:
    resp = await client.rpc("get_invoices_by_amount", {"amount_param": amount}).execute()
    return list(resp.data or [])


async def fetch_with_manual_join(client: AsyncClient, amount: int) -> list[dict[str, Any]]:
    resp = await client.table("invoices").select("amount, customer_id").eq("amount", amount).execute()
    invoice_rows = list(resp.data or [])
    if not invoice_rows:
        return []

    customer_ids = list(dict.fromkeys(inv["customer_id"] for inv in invoice_rows))
    resp = await client.table("customers").select("id, name").in_("id", customer_ids).execute()
    return join_customer_names(invoice_rows, list(resp.data or []))


async def list_invoices(
    engine: AsyncEngine | None,
    client_factory: ClientFactory,
    amount: int = INVOICE_AMOUNT,
) -> list[dict[str, Any]]:
    """
    Invoices at `amount` with their customer's name, from the first strategy that answers:

    1. direct SQL join over the Postgres engine (non-empty result wins)
    2. the `get_invoices_by_amount` RPC
    3. if the RPC is rejected: two PostgREST selects joined in memory

    Errors from the SQL step are logged and fall through; errors from step 3 propagate.
    """
    if engine is None:
        logger.info("invoice_query_sql_skipped", reason="postgres_url_unset")
    else:
        try:
            rows = await fetch_with_sql(engine, amount)
        except Exception as e:  # noqa: BLE001
            logger.warning("invoice_query_sql_failed", error=str(e), error_type=type(e).__name__)
        else:
            if rows:
                logger.info("invoice_query_finished", strategy="sql", rows=len(rows))
                return rows

    client = await client_factory()

    QUERY_FALLBACK_TOTAL.labels("rpc").inc()
    try:
        rows = await fetch_with_rpc(client, amount)
    except APIError as e:
        logger.info("invoice_query_rpc_failed", code=e.code, error=e.message)
    else:
        logger.info("invoice_query_finished", strategy="rpc", rows=len(rows))
        return rows

    QUERY_FALLBACK_TOTAL.labels("manual_join").inc()
    rows = await fetch_with_manual_join(client, amount)
    logger.info("invoice_query_finished", strategy="manual_join", rows=len(rows))
    return rows
