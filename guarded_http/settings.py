import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    # Transport
    base_url: str = Field(default="", alias="HTTP_CLIENT_BASE_URL")
    timeout: float = Field(default=10.0, alias="HTTP_CLIENT_TIMEOUT")
    mock_mode: bool = Field(default=False, alias="HTTP_CLIENT_MOCK_MODE")

    # Logging
    enable_logging: bool = Field(default=False, alias="HTTP_CLIENT_ENABLE_LOGGING")
    slow_request_threshold: float = Field(
        default=8.0, alias="HTTP_CLIENT_SLOW_REQUEST_THRESHOLD"
    )

    # Retry
    retries: int = Field(default=3, alias="HTTP_CLIENT_RETRIES")
    retry_base_delay: float = Field(default=0.1, alias="HTTP_CLIENT_RETRY_BASE_DELAY")

    # Traffic shaping
    rate_limit_delay: float = Field(default=0.3, alias="HTTP_CLIENT_RATE_LIMIT_DELAY")

    # Circuit breaker
    circuit_breaker_threshold: int = Field(
        default=5, alias="HTTP_CLIENT_CIRCUIT_BREAKER_THRESHOLD"
    )
    circuit_breaker_cooldown: float = Field(
        default=60.0, alias="HTTP_CLIENT_CIRCUIT_BREAKER_COOLDOWN"
    )

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and .env)."""
        return cls.model_validate(dict(os.environ))


global_settings = Settings.from_env()
