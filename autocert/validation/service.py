"""Run the six certificate checks and aggregate their verdicts."""

import logging
from typing import Optional

from cryptography import x509

from autocert.errors import CertificateError, ResourceNotFoundError
from autocert.store import CertificateStore
from autocert.utils.helpers import load_certificate, load_certificates
from autocert.validation.base import CertificateValidationResult, format_name
from autocert.validation.chain import ChainValidator
from autocert.validation.domain import DomainValidator
from autocert.validation.key_usage import KeyUsageValidator
from autocert.validation.revocation import RevocationValidator
from autocert.validation.signature import SignatureValidator
from autocert.validation.validity import ValidityPeriodValidator

logger = logging.getLogger(__name__)

STAGING_WARNINGS = (
    "This is a Let's Encrypt STAGING certificate - NOT trusted by browsers!",
    "Staging certificates should ONLY be used for testing purposes",
    "Deploy a PRODUCTION certificate for real-world use",
)


class CertificateValidationService:
    """Validate certificates: every check runs, none short-circuits.

    ``valid`` is true only when all six checks pass. Failed checks are
    listed in ``errors``; passing checks with a soft condition (expiring
    soon, partial chain, staging, key usage warning) in ``warnings``.
    """

    def __init__(
        self,
        certificate_store: Optional[CertificateStore] = None,
        signature: Optional[SignatureValidator] = None,
        validity: Optional[ValidityPeriodValidator] = None,
        chain: Optional[ChainValidator] = None,
        revocation: Optional[RevocationValidator] = None,
        domain: Optional[DomainValidator] = None,
        key_usage: Optional[KeyUsageValidator] = None,
    ):
        if validity is None:
            from config import settings
            validity = ValidityPeriodValidator(settings.CERT_EXPIRY_WARNING_DAYS)
        self.certificate_store = certificate_store
        self.signature = signature or SignatureValidator()
        self.validity = validity
        self.chain = chain or ChainValidator()
        self.revocation = revocation or RevocationValidator()
        self.domain = domain or DomainValidator()
        self.key_usage = key_usage or KeyUsageValidator()

    def validate(self, certificate_id: str) -> CertificateValidationResult:
        """Validate a stored certificate together with its stored chain."""
        logger.info("Validating certificate with ID: %s", certificate_id)
        if self.certificate_store is None:
            raise ResourceNotFoundError("No certificate store configured")
        record = self.certificate_store.get(certificate_id)
        if not record:
            raise ResourceNotFoundError(f"Certificate not found: {certificate_id}")
        return self.validate_certificate_pem(record.certificate_pem, record.chain_pem, certificate_id)

    def validate_certificate_pem(
        self,
        certificate_pem: str,
        chain_pem: Optional[str] = None,
        certificate_id: Optional[str] = None,
    ) -> CertificateValidationResult:
        try:
            certificate = load_certificate(certificate_pem or "")
            chain = load_certificates(chain_pem) if chain_pem and chain_pem.strip() else None
        except CertificateError as e:
            logger.error("Failed to parse certificate: %s", e)
            result = CertificateValidationResult(valid=False, certificate_id=certificate_id)
            result.add_error(e.message)
            return result

        result = self.validate_certificate(certificate, chain)
        result.certificate_id = certificate_id
        return result

    def validate_certificate(
        self,
        certificate: x509.Certificate,
        chain: Optional[list[x509.Certificate]] = None,
    ) -> CertificateValidationResult:
        logger.debug("Performing validation on certificate: %s", format_name(certificate.subject))
        if not chain:
            chain = [certificate]
        else:
            chain = [certificate] + [c for c in chain if c != certificate]

        result = CertificateValidationResult(
            subject=format_name(certificate.subject),
            signature=self.signature.validate(certificate, chain),
            validity=self.validity.validate(certificate, chain),
            chain=self.chain.validate(certificate, chain),
            revocation=self.revocation.validate(certificate, chain),
            domain=self.domain.validate(certificate, chain),
            key_usage=self.key_usage.validate(certificate, chain),
        )

        for name, check in result.checks().items():
            if not check.valid:
                result.add_error(f"{name}: {check.message}")
            elif check.is_soft:
                result.add_warning(f"{name}: {check.message}")

        if result.chain.error_code == "UNTRUSTED_STAGING_CERTIFICATE":
            for warning in STAGING_WARNINGS:
                result.add_warning(warning)

        result.valid = all(check.valid for check in result.checks().values())
        logger.info("Validation completed. Overall result: %s", "VALID" if result.valid else "INVALID")
        return result
