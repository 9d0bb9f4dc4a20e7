from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    bot_token: str = ""
    messenger_api_url: str = "https://platform-api.max.ru"
    messenger_timeout_seconds: float = 30.0
    webhook_secret: str = ""

    state_backend: str = "redis"  # redis | memory
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: float = 2.0
    state_key_prefix: str = "maxbot:user:"
    state_ttl_seconds: int = 48 * 3600

    log_level: str = "INFO"

    reminder_scanner_enabled: bool = True
    reminder_scan_interval_seconds: float = 60.0

    moodle_base_url: str = "http://localhost"
    moodle_timeout_seconds: float = 30.0

    schedule_mock_lag_seconds: float = 0.5

    openai_api_key: str = ""
    openai_model: str = "gpt-5-mini"

    registration_verification_code: str = "1111"
    # Placeholder first-name role table used by registration, not an access control mechanism.
    registration_role_overrides: bool = True

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
