"""
auth/credentials.py -- Bearer token acquisition and caching for the DAX API.

The partner issues short-lived bearer tokens through a password grant:

  POST {api_url}/oauth/token
  Content-Type: application/x-www-form-urlencoded
  client_id=..&grant_type=password&password=..&username=..

CredentialCache keeps the last token and hands it out until it is within the
safety buffer (default 60 s) of its expiry, then fetches a new one.

Single-flight: at most one token request is in flight per cache. The first
caller that finds the cache stale becomes the leader and performs the fetch
outside the lock; callers arriving meanwhile attach to the same _Flight and
wait on its Event. They all get the leader's outcome -- the same token, or the
same AuthenticationError. However the fetch ends (success, HTTP error, timeout,
KeyboardInterrupt), the leader clears the slot and sets the Event in a finally
block, so a hung or cancelled fetch can never wedge later callers. The token
POST always carries a timeout for the same reason.

Failure policy: any failure raises AuthenticationError and caches nothing. The
cache never retries by itself; password grants that fail once rarely succeed on
an immediate retry, so that decision belongs to the caller.

Tokens, passwords and keys are never logged.

Layer rule: no imports from main. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional
from urllib.parse import urlencode

import requests
from pydantic import ValidationError

from core.config import Settings, get_settings
from core.errors import AuthenticationError
from core.models import Credential
from core.schemas import TokenResponse

logger = logging.getLogger("daxgateway.auth")

_DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class TokenEndpointConfig:
    """Everything needed to run the password grant."""

    api_url: str
    client_id: str
    username: str
    password: str
    timeout: float = _DEFAULT_TIMEOUT

    @property
    def token_url(self) -> str:
        return f"{self.api_url.rstrip('/')}/oauth/token"

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenEndpointConfig:
        return cls(
            api_url=settings.dax_api_url,
            client_id=settings.dax_client_id,
            username=settings.dax_username,
            password=settings.dax_password,
            timeout=settings.dax_request_timeout,
        )

    def __repr__(self) -> str:
        return f"TokenEndpointConfig(api_url={self.api_url!r}, client_id={self.client_id!r}, username={self.username!r})"


class _Flight:
    """One in-progress token fetch shared by every caller waiting on it."""

    def __init__(self) -> None:
        self.done = threading.Event()
        self.credential: Optional[Credential] = None
        self.error: Optional[AuthenticationError] = None


class CredentialCache:
    """Thread-safe, single-flight cache of one bearer credential.

    Args:
        config:        Token endpoint and password-grant credentials.
        session:       requests.Session to use. Pass a mock in tests.
        safety_buffer: Seconds before expiry at which a token counts as stale.
        clock:         Returns the current time in epoch seconds.
        wait_timeout:  Upper bound in seconds for followers waiting on an
                       in-flight fetch. None waits for the leader, which is
                       itself bounded by the request timeout.
    """

    def __init__(
        self,
        config: TokenEndpointConfig,
        session: Optional[requests.Session] = None,
        safety_buffer: float = 60.0,
        clock: Callable[[], float] = time.time,
        wait_timeout: Optional[float] = None,
    ) -> None:
        self._config = config
        self._session = session
        self._safety_buffer = safety_buffer
        self._clock = clock
        self._wait_timeout = wait_timeout

        self._lock = threading.Lock()
        self._credential: Optional[Credential] = None
        self._flight: Optional[_Flight] = None

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    @property
    def credential(self) -> Optional[Credential]:
        """The currently cached credential, valid or not."""
        with self._lock:
            return self._credential

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_token(self) -> str:
        """Return a bearer token that is valid for at least the safety buffer.

        Raises AuthenticationError if a fetch was needed and failed.
        """
        with self._lock:
            cred = self._credential
            if cred is not None and cred.is_valid(self._clock(), self._safety_buffer):
                return cred.access_token

            flight = self._flight
            leader = flight is None
            if leader:
                flight = self._flight = _Flight()

        if leader:
            return self._lead(flight)
        return self._follow(flight)

    def invalidate(self) -> None:
        """Drop the cached credential; the next get_token() fetches a new one."""
        with self._lock:
            self._credential = None
        logger.info("DAX credential invalidated")

    # ------------------------------------------------------------------
    # Single-flight internals
    # ------------------------------------------------------------------

    def _lead(self, flight: _Flight) -> str:
        try:
            credential = self._fetch()
            flight.credential = credential
            with self._lock:
                self._credential = credential
            return credential.access_token
        except AuthenticationError as exc:
            flight.error = exc
            raise
        finally:
            if flight.credential is None and flight.error is None:
                flight.error = AuthenticationError("Token request was interrupted before completing.")
            with self._lock:
                if self._flight is flight:
                    self._flight = None
            flight.done.set()

    def _follow(self, flight: _Flight) -> str:
        if not flight.done.wait(self._wait_timeout):
            raise AuthenticationError(f"Timed out after {self._wait_timeout}s waiting for an in-flight token request.")
        if flight.error is not None:
            raise flight.error
        return flight.credential.access_token

    def _fetch(self) -> Credential:
        """Run the password grant once. No retries."""
        cfg = self._config
        body = urlencode(
            [
                ("client_id", cfg.client_id),
                ("grant_type", "password"),
                ("password", cfg.password),
                ("username", cfg.username),
            ]
        )
        now = self._clock()
        logger.info("Requesting DAX OAuth token from %s", cfg.token_url)
        try:
            resp = self.session.post(
                cfg.token_url,
                data=body,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=cfg.timeout,
            )
        except requests.RequestException as exc:
            logger.error("DAX OAuth token request failed: %s", exc)
            raise AuthenticationError(f"Failed to authenticate with DAX API: {exc}") from exc

        if not 200 <= resp.status_code < 300:
            logger.error("DAX OAuth token request rejected: HTTP %s", resp.status_code)
            raise AuthenticationError(
                f"Failed to authenticate with DAX API: OAuth request failed: {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            token = TokenResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            logger.error("DAX OAuth token response could not be parsed")
            raise AuthenticationError(
                "Failed to authenticate with DAX API: malformed token response",
                status_code=resp.status_code,
            ) from exc

        logger.info("DAX OAuth token obtained, expires_in=%ss", token.expires_in)
        return Credential(
            access_token=token.access_token,
            expires_at=now + token.expires_in,
            token_type=token.token_type,
        )


@lru_cache
def get_credential_cache() -> CredentialCache:
    """Return the process-wide CredentialCache built from get_settings().

    Clients built without an explicit cache share this one, so the whole
    process holds a single token. In tests: call get_credential_cache.cache_clear().
    """
    settings = get_settings()
    return CredentialCache(
        TokenEndpointConfig.from_settings(settings),
        safety_buffer=settings.dax_token_safety_buffer,
    )
