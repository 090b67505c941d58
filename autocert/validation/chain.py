"""Chain of trust check against the system trust store."""

import logging
import ssl
import threading
from pathlib import Path
from typing import Callable, Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.x509.oid import NameOID
from cryptography.x509.verification import PolicyBuilder, Store, VerificationError

from autocert.utils.helpers import utcnow
from autocert.validation.base import CertificateValidator, ValidationCheckResult, format_name

logger = logging.getLogger(__name__)

# Issuer name fragments used by Let's Encrypt's staging hierarchy.
STAGING_ISSUER_MARKERS = ("(STAGING)", "Fake LE", "Pretend Pear")


def load_system_trust_store() -> list[x509.Certificate]:
    """Read CA certificates from the locations OpenSSL was built with."""
    paths = ssl.get_default_verify_paths()
    anchors: list[x509.Certificate] = []
    if paths.cafile and Path(paths.cafile).is_file():
        try:
            anchors.extend(x509.load_pem_x509_certificates(Path(paths.cafile).read_bytes()))
        except ValueError as e:
            logger.warning("Could not read CA bundle %s: %s", paths.cafile, e)
    if paths.capath and Path(paths.capath).is_dir():
        for entry in sorted(Path(paths.capath).iterdir()):
            if not entry.is_file():
                continue
            try:
                anchors.extend(x509.load_pem_x509_certificates(entry.read_bytes()))
            except (ValueError, OSError):
                continue
    logger.debug("Loaded %d trust anchors", len(anchors))
    return anchors


def is_staging_chain(chain: list[x509.Certificate]) -> bool:
    for cert in chain:
        issuer = format_name(cert.issuer)
        if any(marker in issuer for marker in STAGING_ISSUER_MARKERS):
            return True
    return False


class ChainValidator(CertificateValidator):
    """Validate the chain in two steps, then classify any failure.

    Step one requires the top of the supplied chain to be issued by a trust
    anchor. Step two runs full path validation. Revocation is not consulted
    here; it has its own check.
    """

    name = "Chain"

    def __init__(self, trust_store: Optional[list[x509.Certificate]] = None, clock: Callable = utcnow):
        self._trust_store = trust_store
        self._trust_lock = threading.Lock()
        self.clock = clock

    @property
    def trust_store(self) -> list[x509.Certificate]:
        with self._trust_lock:
            if self._trust_store is None:
                self._trust_store = load_system_trust_store()
            return self._trust_store

    def validate(self, certificate, chain):
        if not chain or len(chain) <= 1:
            logger.warning("No certificate chain provided, validating single certificate")
            return self._validate_single(certificate)

        try:
            staging = is_staging_chain(chain)
            environment = "Staging" if staging else "Production"
            try:
                self.verify_issuer_trust(chain)
                self.verify_path(chain)
            except (VerificationError, ValueError, InvalidSignature) as e:
                if staging:
                    return self._classify_staging(chain)
                logger.error("Certificate chain validation failed: %s", e)
                return ValidationCheckResult.failure(
                    f"Certificate chain is invalid: {e}", "INVALID_CHAIN",
                )
            return ValidationCheckResult.success(
                f"Certificate chain is valid ({len(chain)} certificates) ({environment})",
                f"ChainLength: {len(chain)}, Environment: {environment}, "
                f"RootCA: {format_name(chain[-1].issuer)}",
            )
        except Exception as e:
            logger.error("Chain validation error: %s", e)
            return ValidationCheckResult.failure(
                f"Chain validation failed: {e}", "CHAIN_VALIDATION_ERROR",
            )

    def verify_issuer_trust(self, chain: list[x509.Certificate]) -> None:
        """Raise ValueError unless the chain's top certificate is anchored."""
        top = chain[-1]
        for anchor in self.trust_store:
            if anchor == top:
                return
            if anchor.subject != top.issuer:
                continue
            try:
                top.verify_directly_issued_by(anchor)
                return
            except (ValueError, TypeError, InvalidSignature):
                continue
        raise ValueError(f"Issuer not found in trust store: {format_name(top.issuer)}")

    def verify_path(self, chain: list[x509.Certificate]) -> list[x509.Certificate]:
        """Full path validation of ``chain[0]`` through ``chain[1:]``."""
        if not self.trust_store:
            raise ValueError("System trust store is empty")
        leaf = chain[0]
        verifier = (
            PolicyBuilder()
            .store(Store(self.trust_store))
            .time(self.clock())
            .build_server_verifier(x509.DNSName(self._hostname(leaf)))
        )
        return verifier.verify(leaf, chain[1:])

    @staticmethod
    def verify_structure(chain: list[x509.Certificate]) -> None:
        """Each certificate must be signed by the next one in the list."""
        for cert, issuer in zip(chain, chain[1:]):
            cert.verify_directly_issued_by(issuer)

    def _classify_staging(self, chain: list[x509.Certificate]) -> ValidationCheckResult:
        logger.warning("Let's Encrypt staging certificate detected, not trusted by browsers")
        try:
            self.verify_structure(chain)
        except (ValueError, TypeError, InvalidSignature) as e:
            return ValidationCheckResult.failure(
                f"Staging certificate chain structure is invalid: {str(e) or 'bad signature'}",
                "INVALID_STAGING_CHAIN",
            )
        return ValidationCheckResult.failure(
            "Certificate is from Let's Encrypt STAGING environment and is NOT trusted "
            "by browsers (test certificate only)",
            "UNTRUSTED_STAGING_CERTIFICATE",
            f"ChainLength: {len(chain)}, Environment: Staging, RootCA: {format_name(chain[-1].issuer)}",
        )

    def _validate_single(self, certificate: x509.Certificate) -> ValidationCheckResult:
        try:
            for anchor in self.trust_store:
                if anchor.subject != certificate.issuer:
                    continue
                try:
                    certificate.verify_directly_issued_by(anchor)
                except (ValueError, TypeError, InvalidSignature):
                    continue
                return ValidationCheckResult.success(
                    f"Certificate is issued by a trusted CA: {format_name(anchor.subject)}",
                    f"TrustedIssuer: {format_name(anchor.subject)}",
                )
            logger.warning("Certificate issuer not found in system trust store")
            return ValidationCheckResult.success(
                "Certificate chain not fully verified (issuer not in trust store)",
                "PartialValidation: Issuer not found in system trust store",
            )
        except Exception as e:
            logger.error("Single certificate validation error: %s", e)
            return ValidationCheckResult.failure(
                f"Certificate validation failed: {e}", "SINGLE_CERT_VALIDATION_ERROR",
            )

    @staticmethod
    def _hostname(leaf: x509.Certificate) -> str:
        try:
            names = leaf.extensions.get_extension_for_class(
                x509.SubjectAlternativeName
            ).value.get_values_for_type(x509.DNSName)
        except x509.ExtensionNotFound:
            names = [a.value for a in leaf.subject.get_attributes_for_oid(NameOID.COMMON_NAME)]
        if not names:
            raise ValueError("Certificate has no DNS name to verify")
        # The server verifier needs a concrete hostname.
        return names[0].replace("*", "www", 1)
