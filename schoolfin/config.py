from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Schoolfin API"
    app_version: str = "0.1.0"
    frontend_url: str = "http://localhost:3000"
    database_url: str = "sqlite:///./local.db"
    redis_url: str = "redis://localhost:6379/0"

    log_level: str = "info"
    log_json: bool = False

    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    tenant_cookie_name: str = "currentSchoolId"
    payment_lock_ttl_seconds: int = 10
    fee_summary_cache_ttl_seconds: int = 120
    mpesa_callback_token: str | None = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
