"""Certificate helper utilities."""

import re
import threading
import time
from datetime import datetime, timezone
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization

from autocert.errors import CertificateError, OperationCancelledError

PEM_PATTERN = re.compile(
    r"-----BEGIN CERTIFICATE-----\s+.+?\s+-----END CERTIFICATE-----",
    re.DOTALL,
)


def parse_pem_chain(pem_text: str) -> list[str]:
    """Split a PEM bundle into individual certificate strings.

    Args:
        pem_text: PEM-encoded text potentially containing multiple certs.

    Returns:
        List of individual PEM certificate strings.
    """
    if not pem_text:
        return []
    return PEM_PATTERN.findall(pem_text)


def split_fullchain(fullchain_pem: str) -> tuple[str, str]:
    """Split a CA full-chain download into (leaf PEM, chain PEM).

    The chain part is the remaining certificates joined with newlines, or an
    empty string when the CA returned the leaf only.
    """
    certs = parse_pem_chain(fullchain_pem)
    if not certs:
        raise CertificateError("No certificate found in CA response")
    leaf = certs[0] + "\n"
    chain = "\n".join(certs[1:]) + "\n" if len(certs) > 1 else ""
    return leaf, chain


def load_certificate(pem: str) -> x509.Certificate:
    """Parse a single PEM certificate, raising CertificateError on bad input."""
    try:
        return x509.load_pem_x509_certificate(pem.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as exc:
        raise CertificateError(f"Failed to parse certificate: {exc}")


def load_certificates(pem_text: str) -> list[x509.Certificate]:
    return [load_certificate(p) for p in parse_pem_chain(pem_text)]


def validity_window(cert: x509.Certificate) -> tuple[datetime, datetime]:
    """Return timezone-aware (not_before, not_after)."""
    return cert.not_valid_before_utc, cert.not_valid_after_utc


def fingerprint(cert: x509.Certificate, algorithm: str = "sha256") -> str:
    """Colon-separated upper-case hex fingerprint of a certificate."""
    algo = {"sha256": hashes.SHA256(), "sha1": hashes.SHA1()}[algorithm]
    digest = cert.fingerprint(algo).hex()
    return ":".join(digest[i:i+2].upper() for i in range(0, len(digest), 2))


def public_key_pem(private_key) -> str:
    return private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def private_key_pem(private_key) -> str:
    return private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Deadline:
    """Time limit and cancellation flag shared by blocking poll loops.

    A deadline without a timeout never expires on its own but can still be
    cancelled from another thread, which wakes any ``sleep`` in progress.
    """

    def __init__(self, timeout: Optional[float] = None):
        self._expires_at = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = threading.Event()

    @classmethod
    def none(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def check(self) -> None:
        """Raise OperationCancelledError if cancel() was called."""
        if self.cancelled:
            raise OperationCancelledError("Operation cancelled")

    def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``, cut short by expiry or cancellation.

        Returns False when the loop should stop waiting.
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._cancelled.wait(seconds)
        return not (self.cancelled or self.expired)
