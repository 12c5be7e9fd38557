from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ALLOWED_LOG_LEVELS: tuple[str, ...] = ('TRACE', 'DEBUG', 'INFO', 'SUCCESS', 'WARNING', 'ERROR', 'CRITICAL')


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', case_sensitive=False, extra='ignore', env_prefix='RECO_TASKS_')

    broker_backend: str = Field(default='memory')
    redis_url: str = Field(default='redis://localhost:6379/0')
    broker_key_prefix: str = Field(default='reco:tasks')
    broker_operation_timeout_seconds: float = Field(default=5.0, ge=0.1, le=120.0)
    broker_lock_timeout_seconds: float = Field(default=5.0, ge=0.01, le=120.0)

    worker_poll_interval_seconds: float = Field(default=0.5, ge=0.0, le=60.0)
    result_poll_interval_seconds: float = Field(default=0.5, ge=0.0, le=60.0)

    log_level: str = Field(default='INFO')
    log_json: bool = Field(default=True)

    @field_validator('broker_backend')
    @classmethod
    def validate_broker_backend(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {'memory', 'redis'}:
            raise ValueError('broker_backend must be "memory" or "redis".')
        return normalized

    @field_validator('broker_key_prefix')
    @classmethod
    def validate_key_prefix(cls, value: str) -> str:
        normalized = value.strip().rstrip(':')
        if not normalized:
            raise ValueError('broker_key_prefix cannot be empty.')
        return normalized

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in ALLOWED_LOG_LEVELS:
            raise ValueError(f'invalid log_level: {value}.')
        return normalized


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
