"""
Webhook signature verification.

Identity provider webhooks are delivered through Svix. Each delivery carries
``svix-id``, ``svix-timestamp`` and ``svix-signature`` headers; the signature
is base64(HMAC-SHA256(key, "<id>.<timestamp>.<raw body>")) where the key is
the base64-decoded part of the ``whsec_`` signing secret. The header may hold
several space-separated ``v1,<signature>`` entries during secret rotation.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import time
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300

SVIX_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


class WebhookSignatureError(Exception):
    """Raised when webhook signature verification fails."""


class MissingWebhookHeadersError(WebhookSignatureError):
    """Raised when one of the Svix headers is absent."""


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time."""
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def extract_svix_signing_key(secret: str) -> bytes:
    """
    Extract the HMAC key bytes from a ``whsec_`` style secret.

    - The key is the base64-decoded part after ``whsec_``
    - Unprefixed secrets are base64-decoded as a whole
    - Secrets that are not valid base64 are used as raw UTF-8 bytes
    """
    b64_part = secret[6:] if secret.startswith("whsec_") else secret
    try:
        return base64.b64decode(b64_part, validate=True)
    except (binascii.Error, ValueError):
        return secret.encode("utf-8")


def sign_svix_payload(secret: str, msg_id: str, timestamp: str, body: bytes) -> str:
    """Compute the base64 ``v1`` signature for a delivery."""
    signed_message = b".".join([msg_id.encode("utf-8"), timestamp.encode("utf-8"), body])
    digest = hmac.new(extract_svix_signing_key(secret), signed_message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_timestamp(
    timestamp: Optional[str],
    max_age: int = MAX_WEBHOOK_AGE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    """
    Verify webhook timestamp is within acceptable range.

    Args:
        timestamp: Unix timestamp as string
        max_age: Maximum age (or clock skew into the future) in seconds
        now: Current time override, for tests

    Returns:
        True if timestamp is valid, False otherwise
    """
    try:
        webhook_time = int(timestamp)
    except (ValueError, TypeError):
        logger.warning(f"Invalid webhook timestamp format: {timestamp}")
        return False

    current_time = int(now if now is not None else time.time())
    age = abs(current_time - webhook_time)
    if age > max_age:
        logger.warning(f"Webhook timestamp outside tolerance: {age}s (max: {max_age}s)")
        return False
    return True


def verify_svix_webhook(
    secret: str,
    headers: Mapping[str, str],
    body: bytes,
    now: Optional[float] = None,
) -> None:
    """
    Verify a Svix webhook delivery.

    Args:
        secret: ``whsec_`` signing secret from the provider dashboard
        headers: Request headers (case-insensitive mapping)
        body: Raw request body, exactly as received
        now: Current time override, for tests

    Raises:
        MissingWebhookHeadersError: A Svix header is missing
        WebhookSignatureError: Timestamp or signature is invalid
    """
    msg_id = headers.get("svix-id")
    timestamp = headers.get("svix-timestamp")
    signature_header = headers.get("svix-signature")

    if not msg_id or not timestamp or not signature_header:
        raise MissingWebhookHeadersError("Missing Svix headers")

    if not verify_timestamp(timestamp, now=now):
        raise WebhookSignatureError("Webhook timestamp expired or invalid")

    expected = sign_svix_payload(secret, msg_id, timestamp, body)

    for candidate in signature_header.split():
        version, _, signature = candidate.partition(",")
        if version != "v1":
            continue
        if constant_time_compare(expected, signature):
            logger.info(f"Webhook signature verified: {msg_id}")
            return

    logger.warning(f"Webhook signature mismatch: {msg_id}")
    raise WebhookSignatureError("No matching signature found")
