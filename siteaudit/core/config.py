from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Worker settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "siteaudit workers"
    app_version: str = "0.1.0"
    environment: str = "local"

    log_json: bool = False

    sentry_dsn: str | None = None
    sentry_enable_logs: bool = False
    sentry_log_level: str = "error"
    sentry_traces_sample_rate: float = 0.0

    audit_user_agent: str = "siteaudit/1.0"
    probe_timeout_seconds: float = 10.0
    probe_connect_timeout_seconds: float = 5.0
    # Connection-level retries handled by the httpx transport.
    probe_retries: int = 0
    probe_max_concurrency: int = 50
    probe_max_redirects: int = 20

    redirect_hop_cap: int = 5
    redirect_hop_tolerance: int = 1
    redirects_file_name: str = "redirects.json"
    redirects_runbook_url: str = ""

    suggestion_budget_bytes: int = 400 * 1024

    traffic_lost_ratio: float = 0.20
    dollar_per_traffic_lost: float = 1.00


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
