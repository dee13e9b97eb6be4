from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    APP_NAME: str = "Retrospend FX Engine"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    PORT: int = 8000

    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/retrospend"
    DATABASE_SYNC_URL: str = ""
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_RECYCLE: int = 300
    DB_SSL_REQUIRE: bool = False

    UPSTASH_REDIS_REST_URL: str = ""
    UPSTASH_REDIS_REST_TOKEN: str = ""

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"
    INTERNAL_JOB_SECRET: Optional[str] = None  # Required in production for /internal/jobs/* auth
    CORS_ORIGINS: str = "http://localhost:3000"

    # Exchange-rate oracle
    RATES_ORACLE_URL: str = (
        "https://raw.githubusercontent.com/syntheit/exchange-rates/refs/heads/main/rates.json"
    )
    RATES_FETCH_TIMEOUT_SECONDS: float = 8.0
    RATES_MAX_ENTRIES: int = 2000
    RATES_SYNC_COOLDOWN_MINUTES: int = 10

    # Tickers whose stored rate is USD per unit rather than units per USD.
    CRYPTO_CURRENCIES: str = "BTC,ETH,SOL,XRP,ADA,DOT,LTC,BNB,TRX,XMR,DAI"

    # Wealth snapshot repair: stored USD above estimate * multiplier is flagged.
    CORRUPTION_THRESHOLD_MULTIPLIER: float = 10.0

    # Generic request limiter (per client, per path)
    RATE_LIMIT_REQUESTS: int = 120
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",")]

    @property
    def crypto_currencies_set(self) -> frozenset[str]:
        return frozenset(
            c.strip().upper() for c in self.CRYPTO_CURRENCIES.split(",") if c.strip()
        )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
