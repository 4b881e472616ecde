from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TRANSTAG_", extra="ignore")

    # Records tagged per scheduled run, across all tables.
    records_per_run: int = 1000
    # Rows fetched per page within a table.
    page_size: int = 20
    cursor_name: str = "tagcontent"
    # Mappings verified per garbage-collection run.
    purge_batch_size: int = 1000
    purge_cursor_name: str = "purgemappings"
    # Optional JSON file replacing the built-in table registry.
    registry_path: Path | None = None
    extract_markup: bool = True
    # Language the management user works in; controls markup without a default-language block.
    interface_language: str | None = None


settings = Settings()
