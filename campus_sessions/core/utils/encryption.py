"""
Field-level encryption for sensitive profile values stored on session records.

Ciphertext is produced with Fernet using a key derived from the configured
encryption key. A keyed, deterministic search hash sits next to each
ciphertext so records can be matched by equality without decrypting.
"""

import base64
import hashlib
import hmac
import logging
from functools import lru_cache
from typing import Optional, Tuple

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from campus_sessions.core.config import settings
from campus_sessions.core.exceptions import CipherError

logger = logging.getLogger(__name__)

MIN_KDF_ITERATIONS = 100_000
MAX_KDF_ITERATIONS = 1_000_000


def normalize_for_search(plaintext: str) -> str:
    return plaintext.strip().lower()


class FieldCipher:
    """Encrypts sensitive fields and derives their search hashes."""

    def __init__(
        self,
        secret: Optional[str] = None,
        salt: Optional[bytes] = None,
        iterations: Optional[int] = None,
        hash_key: Optional[bytes] = None,
    ):
        self._iterations = self._clamp_iterations(
            iterations if iterations is not None else settings.ENCRYPTION_KDF_ITERATIONS
        )
        self._fernet = self._create_fernet(
            secret or settings.encryption_key,
            salt or settings.encryption_salt,
        )
        self._hash_key = hash_key or settings.search_hash_key

    @staticmethod
    def _clamp_iterations(iterations: int) -> int:
        if iterations > MAX_KDF_ITERATIONS:
            logger.warning(f"KDF iterations {iterations} exceeds maximum, using {MAX_KDF_ITERATIONS}")
            return MAX_KDF_ITERATIONS
        if iterations < MIN_KDF_ITERATIONS:
            logger.warning(f"KDF iterations {iterations} below recommended minimum, using 300,000")
            return 300_000
        return iterations

    def _create_fernet(self, secret: str, salt: bytes) -> Fernet:
        if not secret:
            raise CipherError("Encryption key is not configured")

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self._iterations,
        )
        key = base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8")))
        return Fernet(key)

    @staticmethod
    def _require_text(value: object, operation: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise CipherError(f"Cannot {operation} an empty or non-text value")
        return value

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a sensitive value for storage.

        Raises:
            CipherError: On malformed input or any encryption failure. Plaintext
                is never returned in place of ciphertext.
        """
        value = self._require_text(plaintext, "encrypt")
        try:
            return self._fernet.encrypt(value.encode("utf-8")).decode("utf-8")
        except Exception as e:
            logger.error("Failed to encrypt field", extra={"error_type": type(e).__name__})
            raise CipherError("Failed to encrypt sensitive field") from e

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored value; tampered or foreign ciphertext raises CipherError."""
        value = self._require_text(ciphertext, "decrypt")
        try:
            return self._fernet.decrypt(value.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            logger.error("Failed to decrypt field", extra={"error_type": type(e).__name__})
            raise CipherError("Stored field could not be decrypted") from e

    def hash(self, plaintext: str) -> str:
        """Deterministic one-way search hash of the normalized value."""
        value = self._require_text(plaintext, "hash")
        digest = hmac.new(self._hash_key, normalize_for_search(value).encode("utf-8"), hashlib.sha256)
        return digest.hexdigest()

    def seal(self, plaintext: str) -> Tuple[str, str]:
        """Return ``(ciphertext, search_hash)`` for one value."""
        return self.encrypt(plaintext), self.hash(plaintext)


@lru_cache(maxsize=1)
def get_field_cipher() -> FieldCipher:
    """Process-wide cipher built from settings; key derivation runs once."""
    return FieldCipher()
