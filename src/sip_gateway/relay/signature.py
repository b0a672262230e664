"""Webhook signature verification (``X-AEIMS-Signature``)."""

import hashlib
import hmac

SIGNATURE_HEADER = "X-AEIMS-Signature"
_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, header_value: str | None) -> bool:
    """Constant-time check of a hex HMAC-SHA256, optionally ``sha256=``-prefixed."""
    if not header_value:
        return False
    candidate = header_value.strip()
    if candidate.lower().startswith(_PREFIX):
        candidate = candidate[len(_PREFIX):]
    return hmac.compare_digest(candidate.lower().encode("utf-8"), compute_signature(secret, body).encode("ascii"))
