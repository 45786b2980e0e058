"""
HMAC-signed state tokens for the Enode linking flow.

Token format: base64url(serialized).base64url(signature)
Serialized: {"payload": {...}, "ts": issued_at_ms}

The signature is HMAC-SHA256 over the serialized bytes. No expiry is
enforced here; callers that want one can read `issued_at_ms`.
"""
import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.core.config import settings
from app.core.errors import ChargingError

logger = logging.getLogger(__name__)


@dataclass
class SignedState:
    payload: Dict[str, Any]
    issued_at_ms: Optional[int]


def _get_secret_key(secret: Optional[str] = None) -> bytes:
    value = secret if secret is not None else settings.ENODE_STATE_SECRET
    if not value:
        raise ChargingError.internal("ENODE_STATE_SECRET is not configured")
    return value.encode()


def _base64url_encode(data: bytes) -> str:
    """Base64 URL-safe encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b'=').decode('ascii')


def _base64url_decode(data: str) -> bytes:
    """Strict base64url decode; only the canonical unpadded encoding is accepted."""
    padded = data + '=' * (-len(data) % 4)
    decoded = base64.b64decode(padded, altchars=b'-_', validate=True)
    if _base64url_encode(decoded) != data:
        raise ValueError("non-canonical base64url encoding")
    return decoded


def _invalid(reason: str) -> ChargingError:
    logger.warning(f"State token rejected: {reason}")
    return ChargingError.bad_request("Invalid state token.")


def create_state_token(payload: Dict[str, Any], secret: Optional[str] = None, now_ms: Optional[int] = None) -> str:
    if not isinstance(payload, dict):
        raise ChargingError.internal("State token payload must be a JSON object.")
    issued_at = now_ms if now_ms is not None else int(time.time() * 1000)
    serialized = json.dumps(
        {"payload": payload, "ts": issued_at},
        separators=(',', ':'),
        sort_keys=True,
    ).encode()
    signature = hmac.new(_get_secret_key(secret), serialized, hashlib.sha256).digest()
    return f"{_base64url_encode(serialized)}.{_base64url_encode(signature)}"


def decode_state_token(token: str, secret: Optional[str] = None) -> SignedState:
    """Verify the signature and return the payload with its issue timestamp."""
    raw_part, _, signature_part = (token or "").partition(".")
    if not raw_part or not signature_part:
        raise _invalid("malformed token")

    try:
        serialized = _base64url_decode(raw_part)
        signature = _base64url_decode(signature_part)
    except (binascii.Error, ValueError):
        raise _invalid("bad base64")

    expected = hmac.new(_get_secret_key(secret), serialized, hashlib.sha256).digest()
    # compare_digest is constant-time and returns False on length mismatch
    if not hmac.compare_digest(signature, expected):
        raise _invalid("signature mismatch")

    try:
        data = json.loads(serialized.decode())
    except (UnicodeDecodeError, ValueError):
        raise _invalid("payload is not JSON")

    if not isinstance(data, dict) or not isinstance(data.get("payload"), dict):
        raise _invalid("unexpected payload shape")

    issued_at = data.get("ts")
    return SignedState(
        payload=data["payload"],
        issued_at_ms=issued_at if isinstance(issued_at, int) else None,
    )


def verify_state_token(token: str, secret: Optional[str] = None) -> Dict[str, Any]:
    return decode_state_token(token, secret).payload
