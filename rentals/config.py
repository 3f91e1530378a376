from pydantic_settings import BaseSettings
from typing import List, Literal


class Settings(BaseSettings):
    # ─── Application ───────────────────────────────────────────────────────────
    APP_NAME: str = "Vehicle Rental Service"
    APP_ENV:  str = "development"
    APP_DEBUG: bool = True
    APP_HOST:  str = "0.0.0.0"
    APP_PORT:  int = 8000
    LOG_LEVEL: str = "INFO"

    # ─── Database ──────────────────────────────────────────────────────────────
    DATABASE_URL:          str  = "sqlite:///./rentals.db"
    DATABASE_POOL_SIZE:    int  = 10
    DATABASE_MAX_OVERFLOW: int  = 20
    DATABASE_POOL_TIMEOUT: int  = 30
    DATABASE_ECHO:         bool = False

    # ─── Store & Concurrency ───────────────────────────────────────────────────
    # "sql"    -> SQLAlchemy store on DATABASE_URL
    # "memory" -> process-local store (tests, demos)
    STORE_BACKEND: Literal["sql", "memory"] = "sql"
    # "process" -> keyed in-process lock per vehicle (single node)
    # "store"   -> rely on row locks + version checks in the database
    RESERVATION_LOCK_MODE:   Literal["process", "store"] = "process"
    LOCK_TIMEOUT_SECONDS:    float = 5.0
    CONFLICT_RETRY_ATTEMPTS: int   = 3

    # ─── JWT ───────────────────────────────────────────────────────────────────
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM:  str = "HS256"

    # ─── Payment Gateway ───────────────────────────────────────────────────────
    # Empty base URL -> charges are emulated locally
    PAYMENT_GATEWAY_BASE_URL: str   = ""
    PAYMENT_GATEWAY_API_KEY:  str   = ""
    PAYMENT_TIMEOUT_SECONDS:  float = 5.0
    PAYMENT_RETRY_ATTEMPTS:   int   = 2

    # ─── CORS ──────────────────────────────────────────────────────────────────
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:8000"

    def get_cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    model_config = {"env_file": ".env", "case_sensitive": True, "extra": "ignore"}


settings = Settings()
