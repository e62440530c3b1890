"""
core/client.py -- Authenticated, signed, retried calls to the DAX partner API.

All outbound HTTP calls to DAX resource endpoints go through DaxClient.

Per attempt:
  1. Bearer token from the CredentialCache (single-flight, cached).
  2. Fresh Date header and Signature header over method, request target,
     date and the raw body.
  3. One HTTP request with a timeout.

Outcome handling:
  2xx            parse the DaxResponse envelope and return it
  401            AuthorizationExpired -> invalidate the credential and retry
                 once straight away; a second 401 propagates
  5xx, timeout,  TransientNetworkError -> ask the call's BackoffScheduler for
  reset, body    the next delay; -1 or max_attempts reached re-raises the
  cut short      original error, otherwise wait and try again
  other          DaxApiError, raised immediately (includes any other
                 requests exception, e.g. an invalid URL)
  auth/signing   AuthenticationError / SigningError propagate immediately

Each request() call is its own retry loop and gets its own BackoffScheduler
unless the caller supplies one. Waits happen on a threading.Event so another
thread can cancel a pending retry; cancellation raises RequestCancelled.

Testability: pass a mock `session` and a CredentialCache built around another
mock session instead of letting the client create real ones.

Layer rule: imports from core/ and auth/ only.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Optional, Union
from urllib.parse import quote, urlencode

import requests
from pydantic import ValidationError

from auth.credentials import CredentialCache, get_credential_cache
from auth.signing import build_signature_header, load_private_key, load_private_key_file, make_date_header
from core.backoff import STOP, BackoffOptions, BackoffScheduler
from core.config import Settings, get_settings
from core.errors import AuthorizationExpired, DaxApiError, RequestCancelled, SigningError, TransientNetworkError
from core.models import SigningContext
from core.schemas import DaxResponse

logger = logging.getLogger("daxgateway.client")


class DaxClient:
    """Resilient DAX API client.

    Args:
        settings:        Gateway settings; defaults to get_settings().
        credentials:     Token cache; defaults to the process-wide cache.
        session:         requests.Session for resource calls.
        private_key:     RSAPrivateKey or PEM text. Falls back to
                         DAX_PRIVATE_KEY, then the file at DAX_PEM_KEY_PATH.
        backoff_options: Retry strategy for transient failures; defaults to
                         the DAX_RETRY_* settings.
        max_attempts:    Upper bound on attempts per call for transient
                         failures (0 = until the strategy says stop).
                         Defaults to DAX_RETRY_MAX_ATTEMPTS.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        credentials: Optional[CredentialCache] = None,
        session: Optional[requests.Session] = None,
        private_key: Any = None,
        backoff_options: Optional[BackoffOptions] = None,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._credentials = credentials
        self._session = session
        self._private_key = private_key
        self._key_lock = threading.Lock()
        self._backoff_options = backoff_options or BackoffOptions.from_settings(self._settings)
        self.max_attempts = self._settings.dax_retry_max_attempts if max_attempts is None else max_attempts

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    @property
    def credentials(self) -> CredentialCache:
        if self._credentials is None:
            self._credentials = get_credential_cache()
        return self._credentials

    def new_backoff(self) -> BackoffScheduler:
        """Return a fresh scheduler for one retry loop."""
        return BackoffScheduler(self._backoff_options)

    def _signing_key(self):
        """Load the RSA key once; later calls reuse it."""
        with self._key_lock:
            key = self._private_key
            if key is None:
                if self._settings.dax_private_key:
                    key = self._settings.dax_private_key
                elif self._settings.dax_pem_key_path:
                    key = load_private_key_file(self._settings.dax_pem_key_path)
                else:
                    raise SigningError("No private key configured: set DAX_PRIVATE_KEY or DAX_PEM_KEY_PATH.")
            if isinstance(key, (str, bytes)):
                key = load_private_key(key)
            self._private_key = key
            return key

    # ------------------------------------------------------------------
    # Core request dispatcher
    # ------------------------------------------------------------------

    def _send_once(self, method: str, path: str, body: bytes) -> DaxResponse:
        """Execute a single signed request, no retry logic here."""
        token = self.credentials.get_token()
        request_target = f"{self._settings.dax_api_prefix}{path}"
        date = make_date_header()
        signature = build_signature_header(
            SigningContext(
                method=method,
                request_target=request_target,
                date=date,
                body=body,
                private_key=self._signing_key(),
            )
        )
        headers = {
            "Authorization": f"Bearer {token}",
            "Date": date,
            "Signature": signature,
            "Content-Type": "application/json; charset=utf-8",
        }
        url = f"{self._settings.dax_api_url}{request_target}"

        try:
            resp = self.session.request(
                method.upper(),
                url,
                data=body,
                headers=headers,
                timeout=self._settings.dax_request_timeout,
            )
        except requests.Timeout as exc:
            raise TransientNetworkError(f"DAX request timed out: {method} {path}") from exc
        except requests.ConnectionError as exc:
            raise TransientNetworkError(f"DAX connection error: {exc}") from exc
        except (requests.exceptions.ChunkedEncodingError, requests.exceptions.ContentDecodingError) as exc:
            # Connection dropped while the body was being read.
            raise TransientNetworkError(f"DAX response interrupted: {exc}") from exc
        except requests.RequestException as exc:
            raise DaxApiError(f"DAX request could not be sent: {exc}") from exc

        status = resp.status_code
        if status == 401:
            raise AuthorizationExpired(f"DAX API rejected the bearer token: {method} {path}")
        if status >= 500:
            raise TransientNetworkError(f"DAX API request failed: {status}", status_code=status)
        if not 200 <= status < 300:
            raise DaxApiError(f"DAX API request failed: {status}", status_code=status)

        try:
            return DaxResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            logger.error("Failed to parse DAX response for %s %s", method, path)
            raise DaxApiError("DAX API returned an unparsable response", status_code=status) from exc

    def request(
        self,
        method: str,
        path: str,
        context: Optional[str] = None,
        *,
        body: Union[str, bytes, None] = None,
        backoff: Optional[BackoffScheduler] = None,
        cancel: Optional[threading.Event] = None,
    ) -> DaxResponse:
        """Execute an authenticated, signed request with retries.

        Args:
            method:  HTTP verb.
            path:    Path below the API prefix, including any query string,
                     e.g. "/contracts".
            context: Optional request context; sent as {"Context": context}.
                     Without it (and without body) the body is "{}".
            body:    Raw body to send instead of the context document.
            backoff: Scheduler for this call; a fresh one is created if None.
                     Reused schedulers are reset() first.
            cancel:  Event that aborts a pending retry wait when set.

        Raises:
            AuthenticationError, SigningError, DaxApiError: immediately.
            AuthorizationExpired: on a second consecutive 401.
            TransientNetworkError: once the retry budget is exhausted.
            RequestCancelled: if cancel fires while waiting to retry.
        """
        if body is None:
            body = json.dumps({"Context": context}) if context else "{}"
        raw = body.encode("utf-8") if isinstance(body, str) else body

        if backoff is None:
            backoff = self.new_backoff()
        else:
            backoff.reset()
        cancel = cancel or threading.Event()

        refreshed = False
        attempt = 0
        while True:
            try:
                return self._send_once(method, path, raw)
            except AuthorizationExpired:
                if refreshed:
                    raise
                logger.info("DAX returned 401 for %s %s; refreshing token and retrying", method, path)
                self.credentials.invalidate()
                refreshed = True
            except TransientNetworkError as exc:
                attempt += 1
                delay = backoff.next_interval()
                if delay == STOP or (self.max_attempts and attempt >= self.max_attempts):
                    logger.error("DAX request %s %s failed after %d attempt(s): %s", method, path, attempt, exc)
                    raise
                logger.warning(
                    "DAX request %s %s failed attempt=%d: %s; retrying in %dms",
                    method,
                    path,
                    attempt,
                    exc,
                    delay,
                )
                if cancel.wait(delay / 1000):
                    raise RequestCancelled(f"DAX request {method} {path} cancelled while waiting to retry") from exc

    # ------------------------------------------------------------------
    # DAX operations
    # ------------------------------------------------------------------

    def get_contracts(self, context: Optional[str] = "Testrequest") -> Any:
        """Return the `data` of GET /contracts."""
        return self.request("GET", "/contracts", context).data

    def get_card_owner(self, partner_id: str, instance_id: str, card_owner_id: str) -> Any:
        """Return the `data` of GET /partners/{p}/instances/{i}/card-owners/{id}."""
        path = f"{_instance_path(partner_id, instance_id)}/card-owners/{quote(str(card_owner_id), safe='')}"
        return self.request("GET", path).data

    def query_card_owners(
        self,
        partner_id: str,
        instance_id: str,
        firstname: Optional[str] = None,
        lastname: Optional[str] = None,
        email: Optional[str] = None,
        personnummer: Optional[str] = None,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> DaxResponse:
        """Search card owners. Returns the whole envelope so paging is available."""
        params = {
            "firstname": firstname,
            "lastname": lastname,
            "email": email,
            "personnummer": personnummer,
            "offset": offset,
            "limit": limit,
        }
        query = urlencode({k: v for k, v in params.items() if v is not None})
        path = f"{_instance_path(partner_id, instance_id)}/card-owners"
        if query:
            path = f"{path}?{query}"
        return self.request("GET", path)


def _instance_path(partner_id: str, instance_id: str) -> str:
    return f"/partners/{quote(str(partner_id), safe='')}/instances/{quote(str(instance_id), safe='')}"
