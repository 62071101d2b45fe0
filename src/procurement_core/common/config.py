"""Procurement-Core configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "secret_key": "insecure-dev-key-change-me",
}


class ProcurementSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PROCUREMENT_")

    environment: str = "development"
    secret_key: str = "insecure-dev-key-change-me"
    log_level: str = "INFO"

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/procurement.db"

    # API
    api_title: str = "Procurement-Core"
    api_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Bearer tokens issued for principals
    token_max_age: int = 8 * 3600  # seconds

    # Cache TTLs (seconds)
    entity_cache_ttl: int = 3600
    list_cache_ttl: int = 300
    permission_cache_ttl: int = 600

    # Pagination
    default_page_size: int = 10
    max_page_size: int = 100

    # When set, lifecycle operations also consult the permissions table
    enforce_permission_grants: bool = False

    # Contract expiry reminders
    contract_expiry_warning_days: int = 30

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"PROCUREMENT_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default secret key; set PROCUREMENT_SECRET_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> ProcurementSettings:
    settings = ProcurementSettings()
    settings.validate_for_production()
    return settings
