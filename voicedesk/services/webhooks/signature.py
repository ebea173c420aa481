"""Retell webhook signature verification."""

import hashlib
import hmac


def compute_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: str, secret: str) -> bool:
    """
    Verify the x-retell-signature header (hex HMAC-SHA256 of the raw body).

    Args:
        payload: Raw request body bytes
        signature: Value of the x-retell-signature header
        secret: Tenant (or global) webhook secret

    Returns:
        True if signature is valid, False otherwise
    """
    if not signature or not secret:
        return False
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected, signature.strip().lower())
