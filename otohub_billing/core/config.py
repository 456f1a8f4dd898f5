# otohub_billing/core/config.py
from dataclasses import dataclass
from datetime import timedelta
from typing import List
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import validator

# Locate the .env file relative to the project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=str(ENV_FILE), extra="ignore")

    # Application
    PROJECT_NAME: str = "OtoHub Billing"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./otohub_billing.db"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 30.0

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = []

    @validator("BACKEND_CORS_ORIGINS", pre=True)
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    # Payment proof storage
    PROOF_UPLOAD_DIR: str = "./uploads/payment-proofs"
    PROOF_BASE_URL: str = "/uploads/payment-proofs"
    PROOF_MAX_BYTES: int = 5 * 1024 * 1024
    PROOF_ALLOWED_CONTENT_TYPES: List[str] = ["image/jpeg", "image/png", "image/webp", "application/pdf"]

    # Billing policy
    TRIAL_DAYS: int = 14
    GRACE_PERIOD_DAYS: int = 7
    RETENTION_DAYS: int = 30
    INVOICE_DUE_DAYS: int = 7
    RENEWAL_LEAD_DAYS: int = 7
    MONTHLY_PERIOD_DAYS: int = 30
    YEARLY_PERIOD_DAYS: int = 365

    # Lifecycle scheduler
    SCHEDULER_INTERVAL_MINUTES: int = 60
    SCHEDULER_TENANT_TIMEOUT_SECONDS: float = 30.0


settings = Settings()


@dataclass(frozen=True)
class BillingPolicy:
    """Time windows that drive the subscription lifecycle."""

    trial_length: timedelta = timedelta(days=14)
    grace_period: timedelta = timedelta(days=7)
    retention_window: timedelta = timedelta(days=30)
    invoice_due: timedelta = timedelta(days=7)
    renewal_lead: timedelta = timedelta(days=7)
    monthly_period: timedelta = timedelta(days=30)
    yearly_period: timedelta = timedelta(days=365)

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "BillingPolicy":
        return cls(
            trial_length=timedelta(days=source.TRIAL_DAYS),
            grace_period=timedelta(days=source.GRACE_PERIOD_DAYS),
            retention_window=timedelta(days=source.RETENTION_DAYS),
            invoice_due=timedelta(days=source.INVOICE_DUE_DAYS),
            renewal_lead=timedelta(days=source.RENEWAL_LEAD_DAYS),
            monthly_period=timedelta(days=source.MONTHLY_PERIOD_DAYS),
            yearly_period=timedelta(days=source.YEARLY_PERIOD_DAYS),
        )
