"""Result types shared by the certificate checks."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from cryptography import x509

# Substrings that mark a passing check as worth a warning.
SOFT_MARKERS = ("warning", "not fully", "soon", "staging", "partial")


@dataclass
class ValidationCheckResult:
    """Outcome of one check: pass or fail, a message and raw details."""

    valid: bool
    message: str
    details: str = ""
    error_code: str = ""
    skipped: bool = False

    @classmethod
    def success(cls, message: str, details: str = "", skipped: bool = False) -> "ValidationCheckResult":
        return cls(valid=True, message=message, details=details, skipped=skipped)

    @classmethod
    def failure(cls, message: str, error_code: str, details: str = "") -> "ValidationCheckResult":
        return cls(valid=False, message=message, details=details, error_code=error_code)

    @property
    def is_soft(self) -> bool:
        lowered = self.message.lower()
        return self.valid and any(marker in lowered for marker in SOFT_MARKERS)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "message": self.message,
            "details": self.details,
            "error_code": self.error_code,
            "skipped": self.skipped,
        }


@dataclass
class CertificateValidationResult:
    """All six checks plus the aggregated verdict."""

    valid: bool = False
    certificate_id: Optional[str] = None
    subject: str = ""
    signature: Optional[ValidationCheckResult] = None
    validity: Optional[ValidationCheckResult] = None
    chain: Optional[ValidationCheckResult] = None
    revocation: Optional[ValidationCheckResult] = None
    domain: Optional[ValidationCheckResult] = None
    key_usage: Optional[ValidationCheckResult] = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    validated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def checks(self) -> dict:
        """Check label to result, in execution order."""
        return {
            "Signature": self.signature,
            "Validity": self.validity,
            "Chain": self.chain,
            "Revocation": self.revocation,
            "Domain": self.domain,
            "KeyUsage": self.key_usage,
        }

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "certificate_id": self.certificate_id,
            "subject": self.subject,
            "checks": {name: check.to_dict() if check else None for name, check in self.checks().items()},
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "validated_at": self.validated_at.isoformat(),
        }


class CertificateValidator:
    """One independent check over a leaf certificate and its chain."""

    name = ""

    def validate(self, certificate: x509.Certificate,
                 chain: list[x509.Certificate]) -> ValidationCheckResult:
        raise NotImplementedError


def format_name(name: x509.Name) -> str:
    return name.rfc4514_string()


def format_date(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M:%S")
