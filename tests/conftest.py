from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest


# Settings are instantiated at import time; keep them deterministic and offline for tests.
for _var in ("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL", "POSTGRES_URL", "OTEL_ENABLED"):
    os.environ.pop(_var, None)
os.environ.setdefault("LOG_LEVEL", "warning")

# Ensure the repo root is importable (so `import services.*` and `import db.*` work in tests).
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture()
def fake_supabase():
    from tests.supabase_fake import FakeSupabase

    return FakeSupabase()


@pytest.fixture(scope="session")
def postgres_url() -> str:
    postgres = pytest.importorskip("testcontainers.postgres")
    try:
        pg = postgres.PostgresContainer("postgres:16")
        pg.start()
    except Exception as e:  # noqa: BLE001
        pytest.skip(f"docker unavailable: {e}")
    try:
        yield pg.get_connection_url()
    finally:
        pg.stop()
