from functools import lru_cache
from typing import List, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from environment (prefix CHATTERNET_)."""

    app_name: str = "Chatternet Messaging"

    mongo_url: str = "mongodb://localhost:27017"
    mongo_db_name: str = "chatternet"
    redis_url: Optional[str] = None

    jwt_secret: SecretStr = SecretStr("change-me")
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24

    # presence
    presence_staleness_seconds: float = 15.0
    heartbeat_interval_seconds: float = 10.0

    # message log
    max_message_length: int = 4000
    history_default_limit: int = 50
    history_max_limit: int = 200
    append_max_attempts: int = 16

    # client
    api_base_url: str = "http://localhost:10000"
    client_timeout_seconds: float = 10.0
    mark_read_commit_delay_seconds: float = 0.25
    demo_contacts: List[str] = Field(default_factory=lambda: ["echo-bot"])
    demo_reply_delay_seconds: float = 0.3
    demo_mode_enabled: bool = True

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="CHATTERNET_", env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
