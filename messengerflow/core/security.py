"""Webhook verification helpers."""

import hashlib
import hmac
import secrets

from messengerflow.config import settings

SIGNATURE_PREFIX = "sha256="


def verify_subscription(mode: str | None, token: str | None) -> bool:
    """Check the platform's subscribe handshake against the shared verify token."""
    if mode != "subscribe" or not token:
        return False
    return secrets.compare_digest(token.encode(), settings.FB_VERIFY_TOKEN.encode())


def compute_signature(body: bytes, app_secret: str) -> str:
    """Compute the ``X-Hub-Signature-256`` header value for a payload."""
    digest = hmac.new(app_secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes, signature: str | None) -> bool:
    """Verify an event delivery signature.

    Always passes when no app secret is configured.
    """
    if not settings.FB_APP_SECRET:
        return True
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    expected = compute_signature(body, settings.FB_APP_SECRET)
    return hmac.compare_digest(expected, signature)
