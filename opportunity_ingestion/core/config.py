from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "opportunity-ingestion"
    environment: str = "dev"
    upstream_base_url: str = "http://localhost:8000/api"
    upstream_api_key: str | None = None
    upstream_api_key_header: str = "X-API-Key"
    upstream_timeout_seconds: float = 10.0
    queue_fetch_limit: int = 100
    retain_failed_selection: bool = True
    otel_enabled: bool = True
    otel_service_name: str = "opportunity-ingestion"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="OI_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
