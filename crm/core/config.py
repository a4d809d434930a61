from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    JWT_AUDIENCE: Optional[str] = None

    ENVIRONMENT: str = "development"  # "development" or "production"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    ADMIN_API_KEY: str

    REDIS_URL: Optional[str] = None
    RATE_LIMIT_REQUESTS: int = 1000
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    IDEMPOTENCY_TTL_SECONDS: int = 60 * 60 * 24

    STRIPE_SECRET_KEY: Optional[str] = None

    FEATURE_FLAGS_PATH: str = "config/feature_flags.yaml"
    FEATURE_FLAGS_REFRESH_SECONDS: int = 60

    @property
    def is_production(self):
        return self.ENVIRONMENT == "production"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

settings = Settings()
