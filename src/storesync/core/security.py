"""Shared-secret checks for inbound requests.

- verify_webhook_signature(): HMAC-SHA256 over the raw request body
- verify_admin_key(): constant-time comparison of the admin API key
"""

from __future__ import annotations

import hashlib
import hmac


def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 digest of ``body`` keyed with ``secret``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """True when ``signature`` matches the body's HMAC.

    An unset secret or a missing signature never verifies. A ``sha256=``
    prefix on the signature is accepted.
    """
    if not secret or not signature:
        return False
    candidate = signature.strip()
    if candidate.startswith("sha256="):
        candidate = candidate[len("sha256="):]
    return hmac.compare_digest(compute_signature(body, secret), candidate.lower())


def verify_admin_key(provided: str | None, expected: str) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
