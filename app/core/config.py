"""
Application configuration using Pydantic Settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Invoicer API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]
    MAX_REQUEST_BODY_BYTES: int = 1_000_000

    # MongoDB
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB_NAME: str = "invoicer"

    # JWT
    JWT_SECRET_KEY: str = "your-super-secret-key-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours

    # Invoice submission rate limit (fixed window, per user)
    INVOICE_RATE_LIMIT: int = 5
    INVOICE_RATE_WINDOW_SECONDS: int = 60
    INVOICE_LIST_LIMIT: int = 200
    INVOICE_CURRENCY_SYMBOL: str = "$"

    # Background jobs
    JOB_WORKERS: int = 4
    JOB_SHUTDOWN_TIMEOUT_SECONDS: float = 30.0

    # Server-Sent Events
    SSE_KEEPALIVE_SECONDS: float = 15.0
    SSE_QUEUE_SIZE: int = 100

    # Artifact storage: "local" or "s3"
    ARTIFACT_STORAGE: str = "local"
    ARTIFACT_LOCAL_DIR: str = "pdfs"

    # AWS (only used when ARTIFACT_STORAGE=s3)
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    AWS_S3_BUCKET: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"



@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
