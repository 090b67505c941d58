"""Six-check certificate validation."""

from autocert.validation.base import CertificateValidationResult, CertificateValidator, ValidationCheckResult
from autocert.validation.chain import ChainValidator
from autocert.validation.domain import DomainValidator, matches_pattern
from autocert.validation.key_usage import KeyUsageValidator, is_valid_for_server_auth
from autocert.validation.revocation import RevocationValidator
from autocert.validation.service import CertificateValidationService
from autocert.validation.signature import SignatureValidator
from autocert.validation.validity import ValidityPeriodValidator

__all__ = [
    "CertificateValidationResult", "CertificateValidationService", "CertificateValidator",
    "ChainValidator", "DomainValidator", "KeyUsageValidator", "RevocationValidator",
    "SignatureValidator", "ValidationCheckResult", "ValidityPeriodValidator",
    "is_valid_for_server_auth", "matches_pattern",
]
