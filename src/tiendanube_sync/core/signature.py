"""Tiendanube Webhook Signature Verification.

Verifies that incoming webhooks are genuinely from Tiendanube using HMAC-SHA256
over the raw request body.
"""

import hashlib
import hmac
from enum import Enum
from typing import Mapping, Optional

from tiendanube_sync.config.constants import SIGNATURE_HEADERS
from tiendanube_sync.core.logger import setup_logger

logger = setup_logger(__name__)


class VerificationResult(str, Enum):
    """Outcome of the verify stage."""

    VERIFIED = "verified"
    SKIPPED = "skipped"
    FAILED = "failed"


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Lowercase hex HMAC-SHA256 digest of the body."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify(raw_body: bytes, signature_header: Optional[str], secret: Optional[str]) -> bool:
    """
    Verify a Tiendanube webhook signature.

    Args:
        raw_body: Raw request body as bytes (NOT parsed JSON)
        signature_header: Hex digest sent by Tiendanube
        secret: App secret shared with Tiendanube

    Returns:
        True only if the header matches the digest of the body. A missing
        secret always fails.
    """
    if not signature_header:
        return False

    if not secret:
        logger.error("Signature header present but no app secret configured")
        return False

    expected_signature = compute_signature(raw_body, secret)

    # Compare using constant-time comparison
    return hmac.compare_digest(expected_signature, signature_header.strip().lower())


def extract_signature(headers: Mapping[str, str]) -> Optional[str]:
    """Return the first non-empty accepted signature header."""
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in SIGNATURE_HEADERS:
        value = lowered.get(name)
        if value:
            return value
    return None


def check_signature(
    raw_body: bytes,
    signature_header: Optional[str],
    secret: Optional[str],
) -> VerificationResult:
    """
    Run the verify stage of the webhook pipeline.

    An absent header is treated as "skipped" (logged as a warning), not
    rejected. A present header must match.

    Args:
        raw_body: Raw request body as bytes
        signature_header: Value of the signature header, if any
        secret: Configured app secret

    Returns:
        VerificationResult
    """
    if not signature_header:
        logger.warning("Webhook received without signature header, verification skipped")
        return VerificationResult.SKIPPED

    if verify(raw_body, signature_header, secret):
        logger.info("✓ Valid webhook signature")
        return VerificationResult.VERIFIED

    logger.warning(f"Invalid webhook signature. Got: {signature_header[:16]}...")
    return VerificationResult.FAILED
