from __future__ import annotations

import pytest
import sqlalchemy as sa


SCHEMA = [
    "CREATE TABLE customers (id UUID PRIMARY KEY, name VARCHAR(255) NOT NULL)",
    "CREATE TABLE invoices (id UUID PRIMARY KEY, customer_id UUID NOT NULL REFERENCES customers(id), amount INT NOT NULL)",
    "INSERT INTO customers VALUES ('d6e15727-9fe1-4961-8c5b-ea44a9bd81aa', 'Evil Rabbit'), "
    "('3958dc9e-742f-4377-85e9-fec4b6a6442a', 'Lee Robinson')",
    "INSERT INTO invoices VALUES "
    "('00000000-0000-0000-0000-000000000001', 'd6e15727-9fe1-4961-8c5b-ea44a9bd81aa', 100), "
    "('00000000-0000-0000-0000-000000000002', 'd6e15727-9fe1-4961-8c5b-ea44a9bd81aa', 666), "
    "('00000000-0000-0000-0000-000000000003', '3958dc9e-742f-4377-85e9-fec4b6a6442a', 666), "
    "('00000000-0000-0000-0000-000000000004', '3958dc9e-742f-4377-85e9-fec4b6a6442a', 500)",
]


@pytest.mark.asyncio
async def test_direct_sql_join_returns_only_matching_amounts(postgres_url: str):
    from services.dashboard.app.db import create_engine
    from services.dashboard.app.invoices import list_invoices

    engine = create_engine(postgres_url, ssl="disable")
    try:
        async with engine.begin() as conn:
            for stmt in SCHEMA:
                await conn.execute(sa.text(stmt))

        async def no_supabase():
            raise AssertionError("direct SQL should have answered")

        rows = await list_invoices(engine, no_supabase)
    finally:
        await engine.dispose()

    assert len(rows) == 2
    assert {r["name"] for r in rows} == {"Evil Rabbit", "Lee Robinson"}
    assert all(r["amount"] == 666 for r in rows)
