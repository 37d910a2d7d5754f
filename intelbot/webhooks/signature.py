"""HMAC-SHA256 signatures for inbound GitHub webhooks."""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Return the ``X-Hub-Signature-256`` value for ``raw_body``."""

    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(raw_body: bytes, signature_header: str | None, secret: str | None) -> bool:
    """Check ``signature_header`` against the exact bytes received.

    Args:
        raw_body: Request body exactly as read from the wire.
        signature_header: X-Hub-Signature-256 header value.
        secret: Configured webhook secret.

    Returns:
        True only when both header and secret are present and the digests match.
    """

    if not signature_header or not secret:
        return False
    if not signature_header.startswith(SIGNATURE_PREFIX):
        return False

    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature_header.encode("utf-8"))
