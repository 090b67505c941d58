"""Exception taxonomy for the certificate lifecycle engine."""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes carried by every AutoCertError."""

    DUPLICATE_RESOURCE = "DUPLICATE_RESOURCE"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    OPERATION_CANCELLED = "OPERATION_CANCELLED"
    ACME_PROTOCOL_ERROR = "ACME_PROTOCOL_ERROR"
    CERTIFICATE_ERROR = "CERTIFICATE_ERROR"
    DISTRIBUTION_ERROR = "DISTRIBUTION_ERROR"
    ENCRYPTION_ERROR = "ENCRYPTION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"


class AutoCertError(Exception):
    """Base class for all engine errors."""

    default_code = ErrorCode.CERTIFICATE_ERROR

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def __str__(self) -> str:
        return self.message


class CertificateError(AutoCertError):
    """Issuance, renewal or parsing of a certificate failed."""

    default_code = ErrorCode.CERTIFICATE_ERROR


class ConfigurationError(AutoCertError):
    """Unresolvable challenge type or DNS provider, missing credentials."""

    default_code = ErrorCode.CONFIGURATION_ERROR


class ResourceNotFoundError(AutoCertError):
    default_code = ErrorCode.RESOURCE_NOT_FOUND


class DuplicateResourceError(AutoCertError):
    default_code = ErrorCode.DUPLICATE_RESOURCE


class ValidationError(AutoCertError):
    """Invalid input to an operation (not a failed certificate check)."""

    default_code = ErrorCode.VALIDATION_ERROR


class EncryptionError(AutoCertError):
    default_code = ErrorCode.ENCRYPTION_ERROR


class DistributionError(AutoCertError):
    default_code = ErrorCode.DISTRIBUTION_ERROR


class SshConnectionError(DistributionError):
    """SSH connection could not be established after all retries."""

    default_code = ErrorCode.CONNECTION_ERROR

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class OperationCancelledError(AutoCertError):
    default_code = ErrorCode.OPERATION_CANCELLED


class AcmeError(CertificateError):
    """Base class for failures talking to the ACME CA."""


class AcmeProtocolError(AcmeError):
    """The CA reported a challenge, authorization or order as invalid."""

    default_code = ErrorCode.ACME_PROTOCOL_ERROR

    def __init__(self, message: str, ca_error: str = ""):
        super().__init__(message)
        self.ca_error = ca_error


class AcmeTimeoutError(AcmeError):
    """Polling ran out of attempts before a terminal state was reached."""

    default_code = ErrorCode.TIMEOUT_ERROR

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts
