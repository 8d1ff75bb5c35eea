import hashlib
import hmac


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def digest_matches(value: str, expected_digest: str) -> bool:
    """Constant-time comparison of ``sha256(value)`` against a stored digest."""
    return hmac.compare_digest(sha256_hex(value), expected_digest or "")
