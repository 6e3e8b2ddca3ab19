# orderflow/core/config.py
from typing import Literal
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    environment: str = "development"
    log_level: str = "INFO"

    use_mongo: bool = False
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "orderflow"

    sms_api_url: str = "https://dvhosting.in/api-sms-v4.php"
    sms_api_key: str = ""
    channel_timeout_seconds: float = 5.0

    otp_ttl_seconds: int = 600
    otp_max_attempts: int = 5
    otp_length: int = 6
    otp_expose_code: bool = False

    verification_ttl_hours: int = 24
    verification_conflict_policy: Literal["reject", "supersede"] = "reject"

    notification_retention_days: int = 30
    sweep_interval_seconds: int = 300
    assignment_notify_retries: int = 2

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

settings = Settings()
