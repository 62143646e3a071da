from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from enrichment_monitor.models import PollingConfig


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    api_url: str = Field(..., validation_alias="SEARCHLEADS_API_URL")
    status_url: str = Field(..., validation_alias="SEARCHLEADS_STATUS_URL")
    api_key: str = Field(..., validation_alias="SEARCHLEADS_API_KEY")
    webhook_url: Optional[str] = Field(None, validation_alias="DISCORD_WEBHOOK_URL")

    poll_interval_seconds: float = Field(10.0, validation_alias="POLL_INTERVAL_SECONDS")
    max_retries: int = Field(17280, validation_alias="MAX_RETRIES")
    request_timeout_seconds: float = Field(30.0, validation_alias="REQUEST_TIMEOUT_SECONDS")

    def polling_config(self) -> PollingConfig:
        return PollingConfig(
            poll_interval=self.poll_interval_seconds,
            max_retries=self.max_retries,
            request_timeout=self.request_timeout_seconds,
        )
