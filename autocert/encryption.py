"""AES-256-GCM encryption of private keys at rest.

Encrypted values are ``base64(iv || ciphertext || tag)`` with a 96-bit IV and
a 128-bit tag. A value that starts with ``-----BEGIN`` is plaintext PEM.
"""

import base64
import binascii
import logging
import os
import threading
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from autocert.errors import ConfigurationError, EncryptionError

logger = logging.getLogger(__name__)

KEY_SIZE_BYTES = 32
IV_SIZE_BYTES = 12
TAG_SIZE_BYTES = 16
PEM_PREFIX = "-----BEGIN"


def generate_key() -> str:
    """Return a new random base64-encoded 256-bit key."""
    return base64.b64encode(os.urandom(KEY_SIZE_BYTES)).decode("ascii")


@dataclass
class EncryptionConfig:
    """Process-wide key material for private-key encryption."""

    key: bytes
    generated: bool = False

    @classmethod
    def from_key(cls, encoded_key: str) -> "EncryptionConfig":
        try:
            key = base64.b64decode(encoded_key, validate=True)
        except (binascii.Error, ValueError):
            raise ConfigurationError("Encryption key is not valid base64")
        if len(key) != KEY_SIZE_BYTES:
            raise ConfigurationError(
                f"Encryption key must be {KEY_SIZE_BYTES} bytes, got {len(key)}"
            )
        return cls(key=key)

    @classmethod
    def from_settings(
        cls, encoded_key: Optional[str] = None, dev_mode: Optional[bool] = None,
    ) -> "EncryptionConfig":
        """Load the key from configuration.

        Without a key this fails, unless development mode is on, in which
        case a key is generated for the lifetime of the process.
        """
        from config.settings import DEV_MODE, ENCRYPTION_KEY

        encoded_key = ENCRYPTION_KEY if encoded_key is None else encoded_key
        dev_mode = DEV_MODE if dev_mode is None else dev_mode

        if encoded_key:
            return cls.from_key(encoded_key)
        if not dev_mode:
            raise ConfigurationError(
                "AUTOCERT_ENCRYPTION_KEY is not set. Generate one with "
                "'python main.py gen-key' or set AUTOCERT_DEV_MODE=true for local use."
            )
        logger.warning(
            "Development mode: using a generated encryption key. Private keys "
            "encrypted in this process cannot be decrypted after restart."
        )
        return cls(key=os.urandom(KEY_SIZE_BYTES), generated=True)


class CertificateEncryption:
    """Encrypt and decrypt PEM private keys with AES-256-GCM."""

    def __init__(self, config: EncryptionConfig):
        self._aesgcm = AESGCM(config.key)

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return plaintext
        iv = os.urandom(IV_SIZE_BYTES)
        ciphertext = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        return base64.b64encode(iv + ciphertext).decode("ascii")

    def decrypt(self, encrypted: str) -> str:
        if not encrypted:
            return encrypted
        try:
            blob = base64.b64decode(encrypted, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise EncryptionError(f"Encrypted value is not valid base64: {exc}")
        if len(blob) < IV_SIZE_BYTES + TAG_SIZE_BYTES:
            raise EncryptionError("Encrypted value is too short")
        iv, ciphertext = blob[:IV_SIZE_BYTES], blob[IV_SIZE_BYTES:]
        try:
            return self._aesgcm.decrypt(iv, ciphertext, None).decode("utf-8")
        except InvalidTag:
            raise EncryptionError("Decryption failed: wrong key or corrupted data")

    @staticmethod
    def is_encrypted(value: Optional[str]) -> bool:
        """True for base64 text that is not PEM; False for empty or PEM."""
        if not value:
            return False
        if value.lstrip().startswith(PEM_PREFIX):
            return False
        try:
            base64.b64decode(value, validate=True)
            return True
        except (binascii.Error, ValueError):
            return False


_default: Optional[CertificateEncryption] = None
_default_lock = threading.Lock()


def get_default_encryption() -> CertificateEncryption:
    """Return the process-wide encryption helper, loading the key once."""
    global _default
    with _default_lock:
        if _default is None:
            _default = CertificateEncryption(EncryptionConfig.from_settings())
        return _default
