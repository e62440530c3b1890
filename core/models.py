from dataclasses import dataclass
from typing import Any, Union

# ---------------------------------------------------------------------------
# Wire constants
# ---------------------------------------------------------------------------

# Parameters of the Signature header. The partner compares these literally.
SIGNATURE_REALM = "dax"
SIGNATURE_ALGORITHM = "SHA256withRSA"
SIGNED_HEADERS = "(request-target) date"

# Date header format: seven fractional digits, low four always zero.
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{7}Z$"


@dataclass(frozen=True)
class Credential:
    access_token: str
    expires_at: float  # epoch seconds
    token_type: str = "Bearer"

    def is_valid(self, now: float, safety_buffer: float) -> bool:
        """True while now + safety_buffer is still before expiry."""
        return now + safety_buffer < self.expires_at


@dataclass(frozen=True)
class SigningContext:
    method: str
    request_target: str  # path plus query, e.g. "/api/v2.0/contracts"
    date: str
    body: Union[str, bytes] = b""
    # RSAPrivateKey, or PEM text/bytes to be loaded on demand.
    private_key: Any = None

    def __repr__(self) -> str:
        # The key never ends up in logs or tracebacks.
        return (
            f"SigningContext(method={self.method!r}, request_target={self.request_target!r}, "
            f"date={self.date!r}, body={len(self.body)} bytes)"
        )
