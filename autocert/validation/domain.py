"""Domain name check and wildcard matching."""

import logging

from cryptography import x509
from cryptography.x509.oid import NameOID

from autocert.validation.base import CertificateValidator, ValidationCheckResult

logger = logging.getLogger(__name__)


def matches_pattern(pattern: str, domain: str) -> bool:
    """True if ``domain`` is covered by the certificate name ``pattern``.

    ``*.example.com`` covers exactly one extra label: ``api.example.com``
    matches, ``example.com`` and ``a.b.example.com`` do not.
    """
    pattern = (pattern or "").lower().rstrip(".")
    domain = (domain or "").lower().rstrip(".")
    if not pattern or not domain:
        return False
    if pattern == domain:
        return True
    if pattern.startswith("*."):
        base = pattern[2:]
        if domain.endswith("." + base):
            prefix = domain[: -(len(base) + 1)]
            return bool(prefix) and "." not in prefix
    return False


def certificate_names(certificate: x509.Certificate) -> list[str]:
    """SAN DNS names, or the subject CN when there is no SAN extension."""
    try:
        san = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        return san.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        return [str(a.value) for a in certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)]


class DomainValidator(CertificateValidator):
    name = "Domain"

    def validate(self, certificate, chain):
        try:
            names = certificate_names(certificate)
            if not names:
                return ValidationCheckResult.failure(
                    "No domain names found in certificate (no SAN or CN)", "NO_DOMAIN_NAMES",
                )
            wildcards = sum(1 for n in names if n.startswith("*."))
            return ValidationCheckResult.success(
                f"Certificate contains {len(names)} domain(s): {', '.join(names)}",
                f"Domains: {', '.join(names)}, WildcardCount: {wildcards}",
            )
        except ValueError as e:
            logger.error("Domain validation error: %s", e)
            return ValidationCheckResult.failure(
                f"Domain validation failed: {e}", "DOMAIN_VALIDATION_ERROR",
            )

    @staticmethod
    def matches_domain(certificate: x509.Certificate, domain: str) -> bool:
        return any(matches_pattern(name, domain) for name in certificate_names(certificate))
