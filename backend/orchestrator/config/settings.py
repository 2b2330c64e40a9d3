# /orchestrator/config/settings.py

import sys
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # MongoDB (memory, sessions, instructions)
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db_name: str = "agent_orchestrator"
    max_pool_size: int = 10
    min_pool_size: int = 1
    mongo_ssl: bool = False

    # Redis (cache, circuit breakers, operator broadcasts)
    redis_url: str = "redis://localhost:6379"

    # Completion providers
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-1.5-flash"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    completion_timeout_seconds: float = 20.0

    # Collaborators
    app_server_url: str = "http://localhost:3001"
    channel_gateway_url: str | None = None
    channel_gateway_token: str | None = None
    alerting_webhook_url: str | None = None

    # Business clock
    business_timezone: str = "Europe/Bucharest"
    business_hours_start: int = 9
    business_hours_end: int = 18

    # Orchestration
    session_history_limit: int = 4
    session_id_format: str = Field(default="uuid", pattern="^(uuid|composite)$")
    autonomy_confidence_threshold: float = 0.8
    pipeline_timeout_seconds: float = 45.0
    memory_max_array_items: int = 10
    memory_max_nested_fields: int = 5

    # Deployment
    environment: str = Field(default="production", env="ENVIRONMENT")
    api_version: str = "v1"
    api_key: str | None = None
    workers: int = 4
    rate_limit_per_minute: int = 100

    # Comma-separated list of allowed origins
    cors_allowed_origins: str = "http://localhost:3000"

    # ---------------- Validators ---------------- #

    @field_validator("business_hours_start", "business_hours_end")
    @classmethod
    def hour_must_be_valid(cls, v):
        if not 0 <= v <= 24:
            raise ValueError("Business hours must be between 0 and 24")
        return v

    @field_validator("autonomy_confidence_threshold")
    @classmethod
    def threshold_must_be_probability(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("AUTONOMY_CONFIDENCE_THRESHOLD must be between 0 and 1")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


def validate_environment(settings_obj: Settings):
    try:
        if settings_obj.business_hours_start >= settings_obj.business_hours_end:
            raise ValueError("BUSINESS_HOURS_START must be before BUSINESS_HOURS_END")

        if settings_obj.environment == "production":
            if not settings_obj.gemini_api_key and not settings_obj.openai_api_key:
                raise ValueError("At least one completion API key must be provided")
            if not settings_obj.api_key:
                raise ValueError("API_KEY is required in production")

        return settings_obj

    except Exception as e:
        print(f"--- [ERROR] Environment validation failed: {e}")
        sys.exit(1)


settings = Settings()
validate_environment(settings)
