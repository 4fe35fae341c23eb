"""Application configuration from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "Tennis Club"
    debug: bool = True
    secret_key: str = "dev-secret-change-in-production"
    api_prefix: str = "/api"
    log_level: str = "INFO"

    # Database
    database_url: str = "postgresql+asyncpg://tennisclub:tennisclub@db:5432/tennisclub"
    database_echo: bool = False

    # Redis (Celery broker for maintenance jobs)
    redis_url: str = "redis://redis:6379/0"

    # Auth
    access_token_expire_minutes: int = 60
    refresh_token_expire_days: int = 30
    jwt_algorithm: str = "HS256"

    # Pricing (PHP per hour)
    peak_hours: list[int] = [5, 18, 19, 21]
    peak_hour_fee: float = 100.0
    member_rate: float = 20.0
    non_member_rate: float = 50.0

    # Player name matching
    fuzzy_similarity_threshold: float = 0.6
    token_similarity_threshold: float = 0.8

    # Court hours
    opening_hour: int = 5
    closing_hour: int = 22
    max_duration_hours: int = 4

    # Payments
    currency: str = "PHP"
    notes_max_length: int = 500
    reconcile_lookback_hours: int = 24

    # Financial report
    app_service_fee_rate: float = 0.10
    court_receipts_baseline: float = 0.0
    financial_report_path: str = "data/financial-report.json"

    model_config = {"env_prefix": "TC_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
