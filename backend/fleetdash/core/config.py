from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Fleet Analytics API"
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = "sqlite:///./fleetdash.db"
    log_level: str = "INFO"

    upstream_base_url: str = "https://a1.gpsguard.eu/api/v1"
    api_username: str = ""
    api_password: str = ""
    upstream_timeout_sec: float = 20.0

    insights_api_url: str = "https://generativelanguage.googleapis.com/v1beta/models"
    insights_api_key: str = ""
    insights_model: str = "gemini-2.0-flash"
    insights_stale_seconds: int = 300
    insights_timeout_sec: float = 30.0


settings = Settings()
