from typing import Literal

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+psycopg://user:password@db/dbname"

    CF_ACCOUNT_ID: str = ""
    CF_API_TOKEN: str = ""
    CF_AI_BASE_URL: str = "https://api.cloudflare.com/client/v4"
    CF_AI_MODEL: str = "@cf/meta/llama-3.1-8b-instruct"
    MODEL_MAX_TOKENS: int = 4096
    MODEL_TIMEOUT_SECONDS: float = 120.0

    PLAN_FORMAT: Literal["structured", "sectioned"] = "structured"
    MAX_FIELD_LEN: int = 500

    JOB_BACKEND: Literal["inprocess", "celery"] = "inprocess"
    JOB_MAX_RUNNING_SECONDS: int = 900
    JOB_SWEEP_INTERVAL_SECONDS: int = 60
    JOB_DRAIN_TIMEOUT_SECONDS: float = 30.0

    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"

    CORS_ALLOW_ORIGINS: str = "*"

    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
