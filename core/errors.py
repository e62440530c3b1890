"""
core/errors.py -- Exception taxonomy for the DAX gateway.

Every failure the gateway surfaces is a DaxError subclass, so callers can
catch the whole family in one place (the CLI does exactly that). The kind of
error decides what DaxClient does with it:

  AuthenticationError    token endpoint unreachable or rejected us. Fatal.
                         The credential cache never retries on its own.
  SigningError           private key unusable. Fatal, never retried.
  TransientNetworkError  timeouts, connection resets, 5xx. Retried according
                         to the caller's BackoffScheduler.
  AuthorizationExpired   401 on a resource call. Triggers exactly one
                         invalidate-and-retry, separate from backoff.
  DaxApiError            any other non-2xx, or a body we cannot parse. Fatal.
  RequestCancelled       the caller cancelled while we waited to retry.

Layer rule: core/ is the kernel. This module imports nothing from the project.
"""

from typing import Optional


class DaxError(Exception):
    """Base class for everything raised by the gateway."""


class AuthenticationError(DaxError):
    """The token endpoint could not be reached or refused the password grant."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SigningError(DaxError):
    """The private key could not be loaded or used for signing."""


class TransientNetworkError(DaxError):
    """A retryable failure: timeout, reset connection or a 5xx response.

    status_code is None when the failure happened below HTTP.
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthorizationExpired(DaxError):
    """The partner API answered 401 to a resource call."""

    status_code = 401


class DaxApiError(DaxError):
    """Non-retryable response from the partner API."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RequestCancelled(DaxError):
    """The cancellation event fired while waiting for the next attempt."""
