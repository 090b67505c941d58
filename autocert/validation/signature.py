"""Signature check."""

import logging
from typing import Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature

from autocert.validation.base import CertificateValidator, ValidationCheckResult, format_name

logger = logging.getLogger(__name__)


class SignatureValidator(CertificateValidator):
    """Verify the certificate signature against its issuer.

    Self-signed certificates are verified with their own key and pass with a
    note that no CA vouched for them. Otherwise the issuer is looked up in the
    supplied chain; without one the certificate can only be checked against
    itself, which fails for anything not self-signed.
    """

    name = "Signature"

    def validate(self, certificate, chain):
        try:
            if certificate.issuer == certificate.subject:
                certificate.verify_directly_issued_by(certificate)
                logger.warning("Self-signed certificate detected: %s", format_name(certificate.subject))
                return ValidationCheckResult.success(
                    "Self-signed certificate (not verified against CA)",
                    "Self-signed: true",
                )

            issuer = self.find_issuer(certificate, chain)
            if issuer is not None:
                certificate.verify_directly_issued_by(issuer)
                return ValidationCheckResult.success(
                    f"Certificate signature verified by issuer: {format_name(issuer.subject)}",
                    f"Issuer: {format_name(issuer.subject)}",
                )

            certificate.verify_directly_issued_by(certificate)
            return ValidationCheckResult.success(
                "Certificate signature is mathematically valid",
                "Verified with own public key",
            )
        except InvalidSignature as e:
            logger.error("Certificate signature validation failed: %s", e)
            return ValidationCheckResult.failure(
                f"Certificate signature is invalid: {str(e) or 'signature does not match issuer key'}",
                "INVALID_SIGNATURE",
            )
        except (ValueError, TypeError) as e:
            logger.error("Signature validation error: %s", e)
            return ValidationCheckResult.failure(
                f"Signature validation failed: {e}",
                "SIGNATURE_VALIDATION_ERROR",
            )

    @staticmethod
    def find_issuer(certificate: x509.Certificate,
                    chain: list[x509.Certificate]) -> Optional[x509.Certificate]:
        for candidate in chain or []:
            if candidate != certificate and candidate.subject == certificate.issuer:
                return candidate
        return None
