from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./smart_rewards.db"
    database_echo: bool = False
    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: str | None = None
    celery_result_backend: str | None = None
    celery_default_queue: str = "smart-rewards-default"
    secret_key: str = "change-me"
    log_level: str = "INFO"
    tracing_enabled: bool = True

    # Application URLs
    frontend_url: str = "http://localhost:3000"
    api_base_url: str = "http://localhost:8000"

    # Internal API security (operator tooling, scheduled sweeps)
    operator_api_key: str = ""

    # Mukando savings groups
    mukando_bonus_rate_percent: int = Field(10, ge=0, le=100)
    mukando_join_bonus_points: int = Field(0, ge=0)
    mukando_auto_enroll_creator: bool = False
    mukando_payout_min_interval_days: int | None = None
    mukando_allowed_intervals: str = "weekly,monthly"

    @property
    def mukando_interval_options(self) -> list[str]:
        return [item.strip().lower() for item in self.mukando_allowed_intervals.split(",") if item.strip()]

    # Mukando payout worker
    mukando_payout_worker_enabled: bool = False
    mukando_payout_interval_seconds: int = 60 * 60
    mukando_payout_batch_limit: int = 100
    mukando_payout_task_queue: str = "mukando-payouts"

    # Cron job scheduler
    job_scheduler_enabled: bool = False
    job_schedule_path: str = "config/schedules.toml"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
