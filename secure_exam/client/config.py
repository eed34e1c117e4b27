from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Candidate-side runtime settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    EXAM_API_BASE_URL: str = "http://localhost:4000"
    EXAM_API_TIMEOUT_SECONDS: float = 10.0
    EXAM_API_READ_RETRIES: int = Field(default=3, ge=1)
    READING_TIME_SECONDS: int = Field(default=120, ge=0)
    TICK_SECONDS: float = 1.0
    # Auto-submit this long before expiry; keep it above one tick.
    AUTO_SUBMIT_LEAD_SECONDS: float = Field(default=5.0, ge=0)


@lru_cache()
def get_client_settings() -> ClientSettings:
    return ClientSettings()
