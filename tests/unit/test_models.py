"""
Tests for the digest auth data models.
"""

from digestauth.models import (
    AuthFailure,
    NonceRecord,
    Principal,
    VerificationResult,
)


def test_nonce_record_age():
    record = NonceRecord(value="n", opaque="o", realm="r", created_at=1000)
    assert record.age_ms(1500) == 500


def test_nonce_record_from_redis_hash():
    """Test that string fields from a Redis hash are converted."""
    record = NonceRecord.from_dict(
        {"value": "n", "opaque": "o", "realm": "r", "created_at": "1000", "nonce_count": "7"}
    )
    assert record.created_at == 1000
    assert record.nonce_count == 7
    assert NonceRecord.from_dict(record.to_dict()) == record


def test_verification_result_authorized():
    result = VerificationResult.authorized(Principal("Mufasa", "r"))
    assert result.success is True
    assert result.failure is None


def test_verification_result_rejected():
    result = VerificationResult.rejected(AuthFailure.UNKNOWN_USER, "Unknown user", username="Scar")
    assert result.success is False
    assert result.principal is None
    assert result.details == {"username": "Scar"}
