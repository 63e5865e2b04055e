from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Nomad Match API"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    SECRET_KEY: str
    API_V1_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # CORS - Allowed origins (comma-separated in env)
    CORS_ORIGINS: str = "http://localhost:8081,http://localhost:19006,http://localhost:3000,exp://localhost:8081"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        if self.ENVIRONMENT == "development" and self.DEBUG:
            # In development, allow common dev origins
            return [
                "http://localhost:8081",
                "http://localhost:19006",
                "http://localhost:3000",
                "http://127.0.0.1:8081",
                "http://127.0.0.1:19006",
                "http://127.0.0.1:3000",
                "exp://localhost:8081",
                "exp://127.0.0.1:8081",
            ]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # PostgreSQL
    DATABASE_URL: str
    DATABASE_ECHO: bool = False

    # Upstash Redis (suggestions cache)
    UPSTASH_REDIS_URL: str = ""
    UPSTASH_REDIS_TOKEN: str = ""

    # Firebase realtime fabric (optional - chat rooms and notification mirror)
    FIREBASE_PROJECT_ID: str = ""
    FIREBASE_PRIVATE_KEY: str = ""
    FIREBASE_CLIENT_EMAIL: str = ""

    # JWT Settings (tokens are issued by the auth service)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    ALGORITHM: str = "HS256"

    # Free tier limits
    FREE_POST_LIMIT: int = 5
    FREE_SWIPE_LIMIT_PER_DAY: int = 2
    FREE_ADVENTURE_LIMIT_PER_MONTH: int = 1

    # Matching
    SUGGESTIONS_LIMIT: int = 20
    SUGGESTIONS_CACHE_SECONDS: int = 300
    SWIPE_CONFLICT_RETRIES: int = 3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
