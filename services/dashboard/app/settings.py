from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DashboardSettings(BaseSettings):
    model_config = SettingsConfigDict(extra="forbid", populate_by_name=True)

    # Supabase (PostgREST). Empty values are accepted; clients fail on first use.
    supabase_url: str = Field(default="", validation_alias=AliasChoices("SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"))
    supabase_anon_key: str = Field(
        default="", validation_alias=AliasChoices("SUPABASE_ANON_KEY", "NEXT_PUBLIC_SUPABASE_ANON_KEY")
    )
    supabase_service_role_key: str = Field(default="", validation_alias="SUPABASE_SERVICE_ROLE_KEY")

    # Direct Postgres connection string (postgres://... as handed out by the hosting provider).
    postgres_url: str = Field(default="", validation_alias="POSTGRES_URL")
    postgres_ssl: str | None = Field(default="require", validation_alias="POSTGRES_SSL")

    # Which Supabase credential tier backs the /query PostgREST fallbacks.
    query_client_tier: Literal["admin", "anon"] = Field(default="admin", validation_alias="QUERY_CLIENT_TIER")

    log_level: str = Field(default="info", validation_alias="LOG_LEVEL")
    otel_enabled: bool = Field(default=False, validation_alias="OTEL_ENABLED")


SETTINGS = DashboardSettings()
