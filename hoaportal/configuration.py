"""Mini README: Centralised configuration models and helpers for the portal.

Structure:
    * HoaPortalSettings - Pydantic model describing runtime configuration.
    * get_settings - cached accessor for environment-aware settings.

Usage:
    Import ``get_settings`` to read ``HOAPORTAL_*`` environment variables
    (or a local ``.env`` file), choose the storage backend and locate the
    hosted Supabase project. The configuration is cached so validation runs
    only once per process.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings


class HoaPortalSettings(BaseSettings):
    """Runtime configuration for the HOA portal."""

    environment: str = Field(
        "development",
        description="Environment label controlling debug toggles and logging levels.",
    )
    log_level: str = Field("INFO", description="Root logging level name.")
    interface_host: str = Field(
        "0.0.0.0",
        description="Network interface for the web service to bind to.",
    )
    interface_port: int = Field(
        8000,
        description="Default port the web service exposes.",
        ge=1,
        le=65535,
    )
    backend: str = Field(
        "memory",
        description="Registered backend name providing records and authentication.",
    )
    supabase_url: Optional[str] = Field(
        None,
        description="Base URL of the hosted Supabase project, e.g. https://xyz.supabase.co.",
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Anonymous API key used for member sign-in and row queries.",
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description=(
            "Service role key required for provisioning accounts through the"
            " admin auth endpoint. Leave unset to disable user creation."
        ),
    )
    request_timeout: float = Field(
        10.0,
        description="Seconds to wait for each call to the hosted backend.",
        gt=0,
    )
    export_directory: Path = Field(
        Path("exports"),
        description="Directory where CLI workbook exports are written.",
    )
    export_filename: str = Field("HOA_Members.xlsx", description="Workbook filename.")
    export_sheet_name: str = Field("Members", description="Worksheet title for exports.")

    class Config:
        env_prefix = "HOAPORTAL_"
        env_file = ".env"
        case_sensitive = False

    @validator("backend", pre=True)
    def normalise_backend(cls, value: str) -> str:
        """Store backend identifiers lower-cased for registry lookups."""

        return str(value).strip().lower()

    @validator("export_directory", pre=True)
    def expand_path(cls, value: Optional[str | Path]) -> Path:
        """Ensure configured paths expand user directories and exist."""

        path = Path(value).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path


@lru_cache()
def get_settings() -> HoaPortalSettings:
    """Return cached settings, ensuring consistent configuration across modules."""

    return HoaPortalSettings()
