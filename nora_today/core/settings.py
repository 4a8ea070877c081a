from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "dev"
    log_level: str = "INFO"

    api_base_url: str = "http://localhost:3001"
    http_timeout_seconds: float = 15.0
    remote_max_retries: int = 3
    remote_retry_base_delay_seconds: float = 0.5

    # All "today" and streak math happens in this zone, never device-local time.
    reference_timezone: str = "Asia/Singapore"

    store_backend: str = "file"
    store_file_path: str = "data/local_store.json"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "nora:"

    analysis_poll_interval_seconds: float = 3.0
    analysis_poll_max_attempts: int = 40
    day_rollover_check_seconds: int = 60
    lesson_prefetch_count: int = 2

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
