"""Signature and shared-secret checks."""

import hashlib
import hmac


def compute_webhook_signature(payload: bytes, secret: str) -> str:
    """Hex-encoded HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_webhook_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    """
    Verify X-Webhook-Signature against the raw body.

    Args:
        payload: Raw request body bytes (exactly as received)
        signature: Value of the X-Webhook-Signature header
        secret: Shared webhook secret

    Returns:
        True if signature is valid, False otherwise (including when
        no secret is configured)
    """
    if not signature or not secret:
        return False

    expected = compute_webhook_signature(payload, secret)
    return hmac.compare_digest(expected.encode(), signature.strip().lower().encode())


def verify_secret(provided: str | None, expected: str | None) -> bool:
    """Timing-safe comparison for shared secrets in headers."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())
