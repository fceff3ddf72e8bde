"""Server configuration and logging setup."""

import logging
import sys

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import MAX_PAGE_SIZE, APIConfiguration


class ServerConfig(BaseSettings):
    """Settings read from ``EVNETWORK_*`` environment variables or a ``.env`` file."""

    model_config = SettingsConfigDict(
        env_prefix="EVNETWORK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: SecretStr
    api_url: str = "https://api.zujaelectricals.com/api"
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=5, ge=1)
    request_delay: float = Field(default=0.25, ge=0)

    # Pagination defaults for new team views
    default_page_size: int = Field(default=20, ge=1, le=MAX_PAGE_SIZE)
    default_min_depth: int | None = Field(default=1, ge=0)
    default_max_depth: int | None = Field(default=None, ge=1)
    default_root_id: int | None = None

    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_depth_defaults(self) -> "ServerConfig":
        if (
            self.default_min_depth is not None
            and self.default_max_depth is not None
            and self.default_min_depth > self.default_max_depth
        ):
            raise ValueError("default_min_depth must not exceed default_max_depth")
        return self

    def get_api_config(self) -> APIConfiguration:
        """Build the client-side API configuration."""
        return APIConfiguration(
            api_key=self.api_key,
            base_url=self.api_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
            request_delay=self.request_delay,
        )


def setup_logging(level: str | int = "INFO") -> None:
    """Route logging to stderr; stdout carries the MCP stdio protocol."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    has_console = any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in root.handlers
    )
    if not has_console:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        root.addHandler(handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
