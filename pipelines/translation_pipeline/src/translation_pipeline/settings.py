from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="TRANSTAG_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    api_key: str | None = None
    # Any OpenAI-compatible chat completions prefix; `/chat/completions` is appended.
    api_endpoint: str = "https://generativelanguage.googleapis.com/v1beta/openai"
    api_model: str = "gemini-1.5-pro-latest"
    api_timeout_s: float = 120.0
    api_connect_timeout_s: float = 10.0
    llm_temperature: float | None = None

    system_instructions: str = "Translate with a formal tone."
    # Comma separated language codes to fill in.
    target_langs: str = ""

    batch_size: int = 10
    fetch_limit: int = 200
    max_attempts: int = 3
    retry_delay_s: float = 5.0
    rate_limit_threshold: int = 50
    rate_limit_sleep_s: float = 60.0
    max_rate_limit_waits: int = 10
    max_runtime_s: float = 180.0


settings = Settings()
