"""
tests/conftest.py -- Shared fixtures for the DAX gateway tests.

This module provides:
  - make_response(): builds a real requests.Response with a status and JSON body
  - rsa_key / rsa_pem: one 2048-bit test key per session (generation is slow)
  - settings: Settings pointing at a fake partner host, with fast retries
  - token_session / api_session: MagicMock sessions standing in for the token
    endpoint and the resource endpoints

No test in this suite touches the network. Sessions are injected into
CredentialCache and DaxClient, the same seam production code uses.
"""

from __future__ import annotations

import json
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from auth.credentials import CredentialCache, TokenEndpointConfig
from core.config import Settings

API_URL = "https://dax.example.test"

# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def make_response(status: int = 200, payload: Any = None, text: Optional[str] = None) -> requests.Response:
    """Return a requests.Response carrying payload as JSON (or raw text)."""
    resp = requests.Response()
    resp.status_code = status
    if text is not None:
        resp._content = text.encode("utf-8")
    else:
        resp._content = json.dumps(payload if payload is not None else {}).encode("utf-8")
    resp.headers["Content-Type"] = "application/json"
    return resp


def token_response(token: str = "tok-1", expires_in: int = 3600) -> requests.Response:
    return make_response(200, {"access_token": token, "token_type": "Bearer", "expires_in": expires_in})


def envelope(data: Any, **extra: Any) -> dict:
    """A DAX resource response envelope around data."""
    body = {
        "apiVersion": "2.0",
        "correlationId": "c0ffee",
        "statusCode": 200,
        "message": None,
        "data": data,
    }
    body.update(extra)
    return body


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


# ---------------------------------------------------------------------------
# Settings and sessions
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings with millisecond retries so retry tests run instantly."""
    return Settings(
        dax_api_url=API_URL + "/",
        dax_client_id="client-1",
        dax_username="svc-keys",
        dax_password="s3cret&pw",
        dax_retry_strategy="fixed-interval",
        dax_retry_time_unit="ms",
        dax_retry_initial_delay=1,
        dax_retry_interval=1,
        dax_retry_max_attempts=0,
        _env_file=None,
    )


@pytest.fixture
def token_session() -> MagicMock:
    """Session whose post() returns a fresh token on every call."""
    session = MagicMock(spec=requests.Session)
    session.post.return_value = token_response()
    return session


@pytest.fixture
def api_session() -> MagicMock:
    return MagicMock(spec=requests.Session)


@pytest.fixture
def credentials(settings, token_session) -> CredentialCache:
    return CredentialCache(TokenEndpointConfig.from_settings(settings), session=token_session)
