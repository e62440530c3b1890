"""
auth/signing.py -- Per-request RSA signatures for the DAX partner API.

Every resource call carries a Signature header that binds the HTTP method, the
request target, the Date header and the raw body to our private key:

  signing string = "(request-target): {method} {target}\\n"
                   "date: {date}\\n"
                   + raw body bytes            (no separate digest header)
  digest         = SHA-256(signing string)
  signature      = RSA PKCS#1 v1.5 over digest (pre-hashed: not hashed again)
  header         = realm="dax" algorithm="SHA256withRSA"
                   headers="(request-target) date" signature="<base64>"

The partner verifies byte-for-byte, so method is lowercased and both method and
target are stripped exactly as the partner's reference client does. An empty
body still leaves the trailing newline after the date line.

Date header: ISO-8601 UTC with seven fractional digits. We only have
millisecond resolution to offer, so the three millisecond digits are expanded
by * 10000 and the low four digits are always 0000. The partner's parser
expects exactly this shape.

Everything here is stateless and thread-safe. Failures to obtain a usable RSA
key raise SigningError, which callers must treat as fatal.

Layer rule: no imports from main. Import from core/ is allowed.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed

from core.errors import SigningError
from core.models import SIGNATURE_ALGORITHM, SIGNATURE_REALM, SIGNED_HEADERS, SigningContext

logger = logging.getLogger("daxgateway.signing")

# ---------------------------------------------------------------------------
# Key loading
# ---------------------------------------------------------------------------


def load_private_key(pem: Union[str, bytes], password: Optional[bytes] = None) -> rsa.RSAPrivateKey:
    """Parse a PEM-encoded RSA private key (PKCS#1 or PKCS#8).

    Raises SigningError if the PEM cannot be parsed, needs a password we were
    not given, or holds a non-RSA key.
    """
    data = pem.encode("utf-8") if isinstance(pem, str) else pem
    if not data or not data.strip():
        raise SigningError("No private key configured for request signing.")
    try:
        key = serialization.load_pem_private_key(data, password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise SigningError(f"Unable to load private key: {exc}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise SigningError(f"Private key must be RSA, got {type(key).__name__}.")
    return key


def load_private_key_file(path: Union[str, Path], password: Optional[bytes] = None) -> rsa.RSAPrivateKey:
    """Read and parse a PEM key file. Unreadable files raise SigningError."""
    try:
        pem = Path(path).read_bytes()
    except OSError as exc:
        raise SigningError(f"Unable to read private key file '{path}': {exc}") from exc
    return load_private_key(pem, password=password)


def _resolve_key(key) -> rsa.RSAPrivateKey:
    if isinstance(key, rsa.RSAPrivateKey):
        return key
    if isinstance(key, (str, bytes)):
        return load_private_key(key)
    if key is None:
        raise SigningError("No private key configured for request signing.")
    raise SigningError(f"Private key must be RSA, got {type(key).__name__}.")


# ---------------------------------------------------------------------------
# Date header
# ---------------------------------------------------------------------------


def make_date_header(now: Optional[datetime] = None) -> str:
    """Return the Date header value, e.g. 2024-05-01T08:30:12.3450000Z.

    Naive datetimes are taken to be UTC already.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    milliseconds = now.microsecond // 1000
    fraction = str(milliseconds * 10000).zfill(7)
    return f"{now.strftime('%Y-%m-%dT%H:%M:%S')}.{fraction}Z"


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


def build_signing_string(ctx: SigningContext) -> bytes:
    """Return the canonical bytes that get hashed and signed."""
    lines = [
        f"(request-target): {ctx.method.lower().strip()} {ctx.request_target.strip()}",
        f"date: {ctx.date.strip()}",
    ]
    head = "\n".join(lines) + "\n"
    body = ctx.body.encode("utf-8") if isinstance(ctx.body, str) else bytes(ctx.body or b"")
    return head.encode("utf-8") + body


def sign(ctx: SigningContext) -> str:
    """Return the base64 RSA signature for ctx."""
    key = _resolve_key(ctx.private_key)
    signing_bytes = build_signing_string(ctx)
    digest = hashlib.sha256(signing_bytes).digest()

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Signing string (%d bytes): %s",
            len(signing_bytes),
            signing_bytes.decode("utf-8", errors="replace").replace("\n", "\\n"),
        )
        logger.debug("Signing string SHA-256: %s", digest.hex().upper())

    try:
        signature = key.sign(digest, padding.PKCS1v15(), Prehashed(hashes.SHA256()))
    except (ValueError, TypeError) as exc:
        raise SigningError(f"RSA signing failed: {exc}") from exc
    return base64.b64encode(signature).decode("ascii")


def build_signature_header(ctx: SigningContext) -> str:
    """Return the complete Signature header value for ctx."""
    signature = sign(ctx)
    return (
        f'realm="{SIGNATURE_REALM}" algorithm="{SIGNATURE_ALGORITHM}" '
        f'headers="{SIGNED_HEADERS}" signature="{signature}"'
    )
