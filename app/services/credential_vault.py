"""
Credential Vault

AES-256-GCM encryption for customer platform tokens before they are
persisted. Stored blob layout (base64): ``nonce(12) || ciphertext || tag(16)``.
"""
import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.config import settings
from app.core.exceptions import CryptoError

logger = logging.getLogger("axp.vault")

KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16


def decode_key(key_string: str) -> bytes:
    """
    Decode a base64 key into exactly 32 bytes.

    Env loaders sometimes append ``\\r\\n`` to the value; anything past 32
    bytes is dropped rather than rejected. Short keys are an error.
    """
    try:
        raw = base64.b64decode(key_string.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise CryptoError("Encryption key is not valid base64") from e

    if len(raw) > KEY_BYTES:
        logger.warning("Encryption key decoded to %d bytes; truncating to %d", len(raw), KEY_BYTES)
        raw = raw[:KEY_BYTES]
    if len(raw) < KEY_BYTES:
        raise CryptoError(f"Encryption key must be {KEY_BYTES} bytes, got {len(raw)}")
    return raw


def generate_key() -> str:
    """Return a fresh base64-encoded 256-bit key."""
    return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")


def encrypt(plaintext: str, key: bytes) -> str:
    nonce = os.urandom(NONCE_BYTES)
    try:
        ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    except (ValueError, TypeError) as e:
        raise CryptoError(f"Encryption failed: {e}") from e
    return base64.b64encode(nonce + ciphertext).decode("ascii")


def decrypt(blob: str, key: bytes) -> str:
    try:
        combined = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise CryptoError("Decryption failed: malformed ciphertext") from e

    if len(combined) < NONCE_BYTES + TAG_BYTES:
        raise CryptoError("Decryption failed: ciphertext too short")

    nonce, data = combined[:NONCE_BYTES], combined[NONCE_BYTES:]
    try:
        plaintext = AESGCM(key).decrypt(nonce, data, None)
    except InvalidTag as e:
        raise CryptoError("Decryption failed: authentication tag mismatch") from e
    except (ValueError, TypeError) as e:
        raise CryptoError(f"Decryption failed: {e}") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CryptoError("Decryption failed: plaintext is not UTF-8") from e


class CredentialVault:
    """
    Holds the process-wide key; the only place plaintext tokens appear.

    The key is injected so tests (and key rotation tooling) can run with
    their own material instead of ``settings.ENCRYPTION_KEY``.
    """

    def __init__(self, key: str):
        self._key = decode_key(key)

    @classmethod
    def from_settings(cls) -> "CredentialVault":
        if not settings.ENCRYPTION_KEY:
            raise CryptoError("ENCRYPTION_KEY is not configured")
        return cls(settings.ENCRYPTION_KEY)

    def encrypt(self, plaintext: str) -> str:
        return encrypt(plaintext, self._key)

    def decrypt(self, blob: str) -> str:
        return decrypt(blob, self._key)

    def __repr__(self) -> str:
        return "CredentialVault(key=***)"
