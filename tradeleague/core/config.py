from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./tradeleague.db"
    SECRET_KEY: str = "YOUR_SECRET_KEY_HERE"
    ALGORITHM: str = "HS256"
    LOG_LEVEL: str = "INFO"

    # Background lifecycle pass
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_INTERVAL_SECONDS: float = 300.0

    # Quote lookups made during valuation
    QUOTE_TIMEOUT_SECONDS: float = 5.0
    QUOTE_CACHE_TTL_SECONDS: float = 120.0

    MIN_PLAYERS_TO_START: int = 2
    # Measure a tournament's timeframe from started_at instead of created_at
    EXPIRE_FROM_STARTED_AT: bool = False
    LEGEND_WIN_THRESHOLD: int = 10

    class Config:
        env_file = ".env"

settings = Settings()
