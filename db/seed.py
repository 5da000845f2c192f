from __future__ import annotations

import argparse
import asyncio
import hashlib
import json
import uuid
from dataclasses import asdict, dataclass
from typing import Any

import bcrypt
import structlog
from postgrest import APIError
from supabase import AsyncClient

from db import placeholder_data
from db.settings import SETTINGS


logger = structlog.get_logger()

BCRYPT_ROUNDS = 10

# 42P01: Postgres undefined_table. PGRST205: PostgREST can't find the table in its schema cache.
MISSING_RELATION_CODES = frozenset({"42P01", "PGRST205"})


@dataclass(frozen=True)
class TableSpec:
    name: str
    definition: str
    conflict_key: str

    def create_sql(self) -> str:
        return f"CREATE TABLE IF NOT EXISTS {self.name} ({self.definition});"


@dataclass
class TableReport:
    table: str
    rows: int
    upserted: bool


USERS = TableSpec(
    name="users",
    definition=(
        "id UUID DEFAULT uuid_generate_v4() PRIMARY KEY, "
        "name VARCHAR(255) NOT NULL, "
        "email TEXT NOT NULL UNIQUE, "
        "password TEXT NOT NULL"
    ),
    conflict_key="id",
)
CUSTOMERS = TableSpec(
    name="customers",
    definition=(
        "id UUID DEFAULT uuid_generate_v4() PRIMARY KEY, "
        "name VARCHAR(255) NOT NULL, "
        "email VARCHAR(255) NOT NULL, "
        "image_url VARCHAR(255) NOT NULL"
    ),
    conflict_key="id",
)
INVOICES = TableSpec(
    name="invoices",
    definition=(
        "id UUID DEFAULT uuid_generate_v4() PRIMARY KEY, "
        "customer_id UUID NOT NULL REFERENCES customers(id), "
        "amount INT NOT NULL, "
        "status VARCHAR(255) NOT NULL, "
        "date DATE NOT NULL"
    ),
    conflict_key="id",
)
REVENUE = TableSpec(
    name="revenue",
    definition="month VARCHAR(4) NOT NULL UNIQUE, revenue INT NOT NULL",
    conflict_key="month",
)


def _det_uuid(*parts: str) -> uuid.UUID:
    h = hashlib.sha256("||".join(parts).encode("utf-8")).hexdigest()
    return uuid.UUID(h[:32])


def invoice_id(invoice: dict[str, Any]) -> str:
    # Stable across runs so upserting on `id` never duplicates an invoice.
    return str(
        _det_uuid("invoice", str(invoice["customer_id"]), str(invoice["amount"]), invoice["status"], invoice["date"])
    )


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def is_missing_relation(err: APIError) -> bool:
    return err.code in MISSING_RELATION_CODES


async def ensure_table(client: AsyncClient, spec: TableSpec) -> None:
    """
    Create `spec` if needed, via the `create_table_if_not_exists` RPC.

    When that RPC is unavailable, probe the table; only a missing-relation error leads to a raw
    CREATE TABLE through the `execute_sql` RPC. Errors from `execute_sql` are not caught here.
    """
    try:
        await client.rpc(
            "create_table_if_not_exists",
            {"table_name": spec.name, "table_definition": spec.definition},
        ).execute()
        return
    except APIError as e:
        logger.info("seed_create_table_rpc_failed", table=spec.name, code=e.code, error=e.message)

    try:
        await client.table(spec.name).select(spec.conflict_key).limit(1).execute()
        return
    except APIError as e:
        if not is_missing_relation(e):
            logger.warning("seed_table_probe_failed", table=spec.name, code=e.code, error=e.message)
            return

    logger.info("seed_create_table_raw", table=spec.name)
    await client.rpc("execute_sql", {"sql": spec.create_sql()}).execute()


async def upsert_rows(client: AsyncClient, spec: TableSpec, rows: list[dict[str, Any]]) -> bool:
    try:
        await client.table(spec.name).upsert(rows, on_conflict=spec.conflict_key).execute()
    except APIError as e:
        logger.error("seed_upsert_failed", table=spec.name, rows=len(rows), code=e.code, error=e.message)
        return False
    return True


async def seed_users(client: AsyncClient, users: list[dict[str, Any]] | None = None) -> TableReport:
    users = placeholder_data.users if users is None else users
    await ensure_table(client, USERS)

    ok = True
    for user in users:
        hashed = await asyncio.to_thread(hash_password, user["password"])
        row = {"id": user["id"], "name": user["name"], "email": user["email"], "password": hashed}
        ok = await upsert_rows(client, USERS, [row]) and ok
    return TableReport(table=USERS.name, rows=len(users), upserted=ok)


async def seed_customers(client: AsyncClient, customers: list[dict[str, Any]] | None = None) -> TableReport:
    customers = placeholder_data.customers if customers is None else customers
    await ensure_table(client, CUSTOMERS)

    rows = [
        {"id": c["id"], "name": c["name"], "email": c["email"], "image_url": c["image_url"]}
        for c in customers
    ]
    ok = await upsert_rows(client, CUSTOMERS, rows)
    return TableReport(table=CUSTOMERS.name, rows=len(rows), upserted=ok)


async def seed_invoices(client: AsyncClient, invoices: list[dict[str, Any]] | None = None) -> TableReport:
    invoices = placeholder_data.invoices if invoices is None else invoices
    await ensure_table(client, INVOICES)

    rows = [
        {
            "id": inv.get("id") or invoice_id(inv),
            "customer_id": inv["customer_id"],
            "amount": inv["amount"],
            "status": inv["status"],
            "date": inv["date"],
        }
        for inv in invoices
    ]
    ok = await upsert_rows(client, INVOICES, rows)
    return TableReport(table=INVOICES.name, rows=len(rows), upserted=ok)


async def seed_revenue(client: AsyncClient, revenue: list[dict[str, Any]] | None = None) -> TableReport:
    revenue = placeholder_data.revenue if revenue is None else revenue
    await ensure_table(client, REVENUE)

    rows = [{"month": r["month"], "revenue": r["revenue"]} for r in revenue]
    ok = await upsert_rows(client, REVENUE, rows)
    return TableReport(table=REVENUE.name, rows=len(rows), upserted=ok)


async def seed(client: AsyncClient) -> list[TableReport]:
    reports = []
    # Customers before invoices: invoices.customer_id references customers.id.
    for step in (seed_users, seed_customers, seed_invoices, seed_revenue):
        reports.append(await step(client))
    logger.info(
        "seed_finished",
        tables={r.table: r.rows for r in reports},
        failed=[r.table for r in reports if not r.upserted],
    )
    return reports


async def _seed_from_cli(supabase_url: str, service_role_key: str) -> list[TableReport]:
    from services.dashboard.app.clients import create_supabase_admin

    client = await create_supabase_admin(supabase_url, service_role_key, strict=True)
    return await seed(client)


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the dashboard tables with the placeholder dataset.")
    parser.add_argument("--supabase-url", default=SETTINGS.supabase_url)
    parser.add_argument("--service-role-key", default=SETTINGS.supabase_service_role_key)
    args = parser.parse_args()

    from services.dashboard.app.logging import configure_logging

    configure_logging(SETTINGS.log_level, service_name="seed")

    reports = asyncio.run(_seed_from_cli(args.supabase_url, args.service_role_key))
    print(json.dumps({"tables": [asdict(r) for r in reports]}, indent=2))


if __name__ == "__main__":
    main()
