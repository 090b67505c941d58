"""Key usage check for TLS server authentication."""

import logging
from typing import Optional

from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID

from autocert.validation.base import CertificateValidator, ValidationCheckResult

logger = logging.getLogger(__name__)

KEY_USAGE_FLAGS = (
    ("digital_signature", "digitalSignature"),
    ("content_commitment", "nonRepudiation"),
    ("key_encipherment", "keyEncipherment"),
    ("data_encipherment", "dataEncipherment"),
    ("key_agreement", "keyAgreement"),
    ("key_cert_sign", "keyCertSign"),
    ("crl_sign", "cRLSign"),
)

EKU_NAMES = {
    ExtendedKeyUsageOID.SERVER_AUTH: "serverAuth",
    ExtendedKeyUsageOID.CLIENT_AUTH: "clientAuth",
    ExtendedKeyUsageOID.CODE_SIGNING: "codeSigning",
    ExtendedKeyUsageOID.EMAIL_PROTECTION: "emailProtection",
}


def key_usages(certificate: x509.Certificate) -> Optional[list[str]]:
    """Names of the KeyUsage bits set, or None without the extension."""
    try:
        usage = certificate.extensions.get_extension_for_class(x509.KeyUsage).value
    except x509.ExtensionNotFound:
        return None
    return [label for attr, label in KEY_USAGE_FLAGS if getattr(usage, attr)]


def extended_key_usages(certificate: x509.Certificate) -> Optional[list[str]]:
    try:
        eku = certificate.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
    except x509.ExtensionNotFound:
        return None
    return [EKU_NAMES.get(oid, f"other({oid.dotted_string})") for oid in eku]


def is_valid_for_server_auth(certificate: x509.Certificate) -> bool:
    """EKU (if present) includes serverAuth and KeyUsage (if present) allows TLS."""
    usages = key_usages(certificate)
    extended = extended_key_usages(certificate)
    if extended is not None and "serverAuth" not in extended:
        return False
    if usages is not None and not ({"digitalSignature", "keyEncipherment"} & set(usages)):
        return False
    return True


class KeyUsageValidator(CertificateValidator):
    """Report key usage; an unsuitable combination is a warning, not a failure."""

    name = "KeyUsage"

    def validate(self, certificate, chain):
        try:
            usages = key_usages(certificate)
            extended = extended_key_usages(certificate)
            server_auth = is_valid_for_server_auth(certificate)
            details = "KeyUsage: {}, ExtendedKeyUsage: {}, ValidForServerAuth: {}".format(
                ", ".join(usages) if usages else "none",
                ", ".join(extended) if extended else "none",
                str(server_auth).lower(),
            )
            if not server_auth:
                logger.warning("Certificate may not be suitable for server authentication")
                return ValidationCheckResult.success(
                    "Key usage warning: certificate may not be suitable for TLS server authentication",
                    details,
                )
            return ValidationCheckResult.success(
                "Certificate has appropriate key usage for TLS server authentication", details,
            )
        except ValueError as e:
            logger.error("Key usage validation error: %s", e)
            return ValidationCheckResult.failure(
                f"Key usage validation failed: {e}", "KEY_USAGE_VALIDATION_ERROR",
            )
