"""
Tests for webhook signature verification.
"""
from tiendanube_sync.core.signature import (
    VerificationResult,
    check_signature,
    compute_signature,
    extract_signature,
    verify,
)

from conftest import TEST_SECRET, sign

BODY = b'{"store_id": 42, "event": "product/updated", "id": 7}'


class TestVerify:
    """HMAC-SHA256 over the raw body."""

    def test_valid_signature(self):
        assert verify(BODY, sign(BODY), TEST_SECRET) is True

    def test_digest_is_lowercase_hex(self):
        digest = compute_signature(BODY, TEST_SECRET)
        assert len(digest) == 64
        assert digest == digest.lower()
        int(digest, 16)

    def test_single_byte_change_fails(self):
        signature = sign(BODY)
        tampered = BODY.replace(b"42", b"43")
        assert verify(tampered, signature, TEST_SECRET) is False

    def test_wrong_secret_fails(self):
        assert verify(BODY, sign(BODY, "other-secret"), TEST_SECRET) is False

    def test_missing_secret_fails_closed(self):
        assert verify(BODY, sign(BODY), None) is False
        assert verify(BODY, sign(BODY), "") is False

    def test_empty_header_is_not_a_match(self):
        assert verify(BODY, "", TEST_SECRET) is False


class TestCheckSignature:
    """Verify stage outcome."""

    def test_absent_header_is_skipped(self):
        assert check_signature(BODY, None, TEST_SECRET) == VerificationResult.SKIPPED

    def test_empty_header_is_skipped(self):
        assert check_signature(BODY, "", TEST_SECRET) == VerificationResult.SKIPPED

    def test_valid_header_is_verified(self):
        assert check_signature(BODY, sign(BODY), TEST_SECRET) == VerificationResult.VERIFIED

    def test_mismatch_is_failed(self):
        assert check_signature(BODY, "0" * 64, TEST_SECRET) == VerificationResult.FAILED

    def test_header_without_secret_is_failed(self):
        assert check_signature(BODY, sign(BODY), None) == VerificationResult.FAILED


class TestExtractSignature:
    """Either accepted header name, first non-empty wins."""

    def test_primary_header(self):
        assert extract_signature({"x-linkedstore-hmac-sha256": "abc"}) == "abc"

    def test_header_names_are_case_insensitive(self):
        assert extract_signature({"X-Linkedstore-Hmac-Sha256": "abc"}) == "abc"

    def test_fallback_header(self):
        assert extract_signature({"HTTP_X_LINKEDSTORE_HMAC_SHA256": "def"}) == "def"

    def test_empty_primary_falls_back(self):
        headers = {"x-linkedstore-hmac-sha256": "", "http_x_linkedstore_hmac_sha256": "def"}
        assert extract_signature(headers) == "def"

    def test_no_header(self):
        assert extract_signature({"content-type": "application/json"}) is None
