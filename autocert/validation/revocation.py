"""Revocation check.

Only the presence of OCSP and CRL endpoints is detected. No responder or
distribution point is contacted, so every result is marked ``skipped``.
"""

import logging

from cryptography import x509
from cryptography.x509.oid import AuthorityInformationAccessOID

from autocert.validation.base import CertificateValidator, ValidationCheckResult

logger = logging.getLogger(__name__)


class RevocationValidator(CertificateValidator):
    name = "Revocation"

    def validate(self, certificate, chain):
        try:
            ocsp_urls = self.ocsp_urls(certificate)
            if ocsp_urls:
                return ValidationCheckResult.success(
                    "OCSP endpoint found (live revocation check skipped)",
                    f"OCSPExtensionPresent: true, OCSP: {', '.join(ocsp_urls)}",
                    skipped=True,
                )
            crl_urls = self.crl_urls(certificate)
            if crl_urls:
                return ValidationCheckResult.success(
                    "CRL endpoint found (live revocation check skipped)",
                    f"CRLExtensionPresent: true, CRL: {', '.join(crl_urls)}",
                    skipped=True,
                )
            logger.warning("No revocation information available for certificate")
            return ValidationCheckResult.success(
                "No revocation check performed (OCSP/CRL not available)",
                "RevocationCheckSkipped: No OCSP or CRL endpoints found",
                skipped=True,
            )
        except ValueError as e:
            logger.error("Revocation validation error: %s", e)
            return ValidationCheckResult.failure(
                f"Revocation validation failed: {e}", "REVOCATION_VALIDATION_ERROR",
            )

    @staticmethod
    def ocsp_urls(certificate: x509.Certificate) -> list[str]:
        try:
            aia = certificate.extensions.get_extension_for_class(x509.AuthorityInformationAccess).value
        except x509.ExtensionNotFound:
            return []
        return [
            desc.access_location.value for desc in aia
            if desc.access_method == AuthorityInformationAccessOID.OCSP
        ]

    @staticmethod
    def crl_urls(certificate: x509.Certificate) -> list[str]:
        try:
            points = certificate.extensions.get_extension_for_class(x509.CRLDistributionPoints).value
        except x509.ExtensionNotFound:
            return []
        urls = []
        for point in points:
            for name in point.full_name or []:
                if isinstance(name, x509.UniformResourceIdentifier):
                    urls.append(name.value)
        return urls
