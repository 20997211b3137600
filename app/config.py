from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "leadcheck"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    cors_origins: list[str] = []

    # Database
    database_url: str | None = None
    lead_table_auto_create: bool = False

    # Providers
    brave_api_key: str | None = None
    openai_api_key: str | None = None

    # Judge
    judge_model: str = "gpt-4o-mini"
    judge_temperature: float = 0.0
    judge_backend: str = "auto"

    # Runtime
    leadcheck_mode: str = "fixture"
    leadcheck_fixture_dir: str = "fixtures/sample"

    # Search / page fetching
    search_result_count: int = 10
    search_country: str = "JP"
    search_lang: str = "ja"
    search_retry_attempts: int = 3
    search_retry_base_delay: float = 1.0
    page_timeout_seconds: float = 15.0
    page_text_limit: int = 15000
    match_text_limit: int = 5000

    # Verification pipeline
    settle_delay_seconds: float = 1.0
    inter_candidate_delay_seconds: float = 3.0
    phone_batch_delay_seconds: float = 2.0
    candidate_timeout_seconds: float = 600.0
    extraction_min_confidence: int = 20
    company_accept_threshold: int = 60
    high_quality_threshold: int = 70
    duplicate_cache_ttl_seconds: int = 1800

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "leadcheck"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
