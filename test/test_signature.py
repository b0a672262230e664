"""
Tests for webhook signature verification.
"""

import hashlib
import hmac

from sip_gateway.relay.signature import compute_signature, verify_signature

BODY = b'{"type":"call.started","data":{"userId":"u1"}}'


def test_compute_matches_hmac_sha256() -> None:
    expected = hmac.new(b"secret", BODY, hashlib.sha256).hexdigest()
    assert compute_signature("secret", BODY) == expected


def test_accepts_plain_and_prefixed_hex() -> None:
    signature = compute_signature("secret", BODY)

    assert verify_signature("secret", BODY, signature)
    assert verify_signature("secret", BODY, f"sha256={signature}")
    assert verify_signature("secret", BODY, signature.upper())


def test_rejects_wrong_secret_tampered_body_and_missing_header() -> None:
    signature = compute_signature("secret", BODY)

    assert not verify_signature("other", BODY, signature)
    assert not verify_signature("secret", BODY + b" ", signature)
    assert not verify_signature("secret", BODY, None)
    assert not verify_signature("secret", BODY, "")


def test_non_ascii_header_is_rejected() -> None:
    assert not verify_signature("secret", BODY, "sha256=éé")
    assert not verify_signature("secret", BODY, "é" * 64)
