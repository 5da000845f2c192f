"""
Supabase client construction.

Two credential tiers:
- anonymous (public key): safe for untrusted contexts, row level security applies
- service role (admin key): bypasses row level security, server-side only

An empty URL or key cannot produce a client: `acreate_client` rejects it with SupabaseException.
Without `strict` the gap is logged and that library error propagates; `strict=True` raises
ClientConfigError naming every missing field before the library is called. The app builds
clients lazily on the first request that needs one, so bad config fails that request, not startup.
"""

from __future__ import annotations

from supabase import AsyncClient, acreate_client

from services.dashboard.app.logging import logger


class ClientConfigError(ValueError):
    pass


def _check_config(tier: str, url: str, key: str, strict: bool) -> None:
    missing = [name for name, value in (("url", url), ("key", key)) if not value]
    if not missing:
        return
    if strict:
        raise ClientConfigError(f"supabase {tier} client is missing: {', '.join(missing)}")
    logger.warning("supabase_config_incomplete", tier=tier, missing=missing)


async def create_supabase_client(url: str, anon_key: str, *, strict: bool = False) -> AsyncClient:
    _check_config("anon", url, anon_key, strict)
    return await acreate_client(url, anon_key)


async def create_supabase_admin(url: str, service_role_key: str, *, strict: bool = False) -> AsyncClient:
    # Never hand this client to code that serves untrusted callers directly.
    _check_config("admin", url, service_role_key, strict)
    return await acreate_client(url, service_role_key)
