from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "CASH-LEDGER"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite+pysqlite:///./ledger.db"
    CURRENCY: str = "COP"
    RECONCILIATION_TOLERANCE: Decimal = Decimal("5000")
    WITHDRAWAL_AUTHORIZATION_THRESHOLD: Decimal = Decimal("100000")
    EXPENSE_AUTHORIZATION_THRESHOLD: Decimal = Decimal("500000")
    MOVEMENT_AUTHORIZATION_THRESHOLD: Decimal = Decimal("100000")
    APPROVAL_NOTES_MIN_LENGTH: int = 10
    SHIFT_MAX_HOURS: int = 8
    LOW_CASH_THRESHOLD: Decimal = Decimal("50000")
    HIGH_CASH_THRESHOLD: Decimal = Decimal("200000")
    AUDIT_CACHE_TOLERANCE: Decimal = Decimal("0.01")
    OPS_ENABLE_LEDGER_SCAN: bool = True
    METRICS_ENABLED: bool = True


settings = Settings()
