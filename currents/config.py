"""Runtime configuration for currents.

Settings are resolved in this order:
1. Defaults declared on ``Settings``
2. A ``.env`` file in the working directory
3. ``CURRENTS_*`` environment variables
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Client and store proxy settings."""

    model_config = SettingsConfigDict(
        env_prefix="CURRENTS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Local client state
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".currents")

    # Remote store proxy
    remote_url: str | None = None
    auth_token: str | None = None
    request_timeout: float = 30.0
    verify_ssl: bool = True

    # Failed head operations are retried forever unless this is set
    max_attempts: int | None = Field(default=None, ge=1)

    # Store proxy server
    database_url: str = "sqlite:///./currents-store.db"
    host: str = "127.0.0.1"
    port: int = 8000

    log_level: LogLevel = "INFO"

    @property
    def remote_configured(self) -> bool:
        return bool(self.remote_url)
