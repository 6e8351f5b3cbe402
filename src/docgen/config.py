"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from .env or environment variables."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Hosted backend (PostgREST + object storage)
    supabase_url: str = ""
    supabase_service_key: str = ""
    storage_bucket: str = "documents"
    generated_prefix: str = "generated"

    # Template catalog (required fields / extra fallbacks per template)
    catalog_file: str = "./templates.yaml"

    # Record aggregation
    fetch_timeout: float = 10.0
    max_fetch_workers: int = 4

    # Document defaults
    qi_company: str = "Peak 1031 Exchange"

    # Application
    log_level: str = "INFO"

    @property
    def catalog_path(self) -> Path:
        return Path(self.catalog_file)

    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    def has_catalog(self) -> bool:
        return self.catalog_path.exists()


def get_settings() -> Settings:
    return Settings()
