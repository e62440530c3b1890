"""
core/config.py -- Centralized gateway configuration via pydantic-settings.

All environment variable reads for the gateway happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. dax_api_url -> DAX_API_URL). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field normalisation after all
      fields are resolved. The API URL loses any trailing slash and the API
      prefix always starts with one, so "{url}{prefix}{path}" never doubles or
      drops a separator.

Credentials (password, PEM key) are optional at construction time so Settings()
works in test environments. The components that need them fail loudly at first
use instead (AuthenticationError / SigningError).

Layer rule: core/ is the kernel. This module may not import from auth/.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("daxgateway.config")

RetryStrategy = Literal["off", "fixed-interval", "incremental-backoff", "exponential-backoff"]
TimeUnit = Literal["ms", "s", "m"]


class Settings(BaseSettings):
    """Gateway settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated without a real
    .env file. Retry timings are expressed in dax_retry_time_unit; a value of 0
    means "use the strategy default".
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Partner API
    # ------------------------------------------------------------------

    dax_api_url: str = "http://localhost:8080"
    dax_api_prefix: str = "/api/v2.0"
    dax_request_timeout: float = 30.0

    # ------------------------------------------------------------------
    # Password grant
    # ------------------------------------------------------------------

    dax_client_id: str = ""
    dax_username: str = ""
    dax_password: str = ""
    # Seconds subtracted from a token's lifetime before it is refreshed.
    dax_token_safety_buffer: float = 60.0

    # ------------------------------------------------------------------
    # Request signing -- inline PEM wins over the path when both are set
    # ------------------------------------------------------------------

    dax_pem_key_path: str = ""
    dax_private_key: str = ""

    # ------------------------------------------------------------------
    # Retry policy for transient failures
    # ------------------------------------------------------------------

    dax_retry_strategy: RetryStrategy = "exponential-backoff"
    dax_retry_time_unit: TimeUnit = "s"
    dax_retry_initial_delay: float = 0
    dax_retry_interval: float = 0
    dax_retry_increment: float = 0
    dax_retry_max_interval: float = 0
    # 0 = keep going until the strategy says stop
    dax_retry_max_attempts: int = 5

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def normalise(self) -> "Settings":
        """Normalise URL joins and reject negative timings."""
        self.dax_api_url = self.dax_api_url.rstrip("/")
        prefix = self.dax_api_prefix.strip().rstrip("/")
        if prefix and not prefix.startswith("/"):
            prefix = "/" + prefix
        self.dax_api_prefix = prefix

        for name in (
            "dax_request_timeout",
            "dax_token_safety_buffer",
            "dax_retry_initial_delay",
            "dax_retry_interval",
            "dax_retry_increment",
            "dax_retry_max_interval",
            "dax_retry_max_attempts",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name.upper()} must not be negative.")

        if self.dax_request_timeout == 0:
            logger.warning("DAX_REQUEST_TIMEOUT is 0; falling back to 30 seconds.")
            self.dax_request_timeout = 30.0
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the gateway Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
