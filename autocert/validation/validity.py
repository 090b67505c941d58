"""Validity period check."""

import logging
from typing import Callable, Optional

from autocert.utils.helpers import utcnow, validity_window
from autocert.validation.base import CertificateValidator, ValidationCheckResult, format_date

logger = logging.getLogger(__name__)

DEFAULT_WARNING_DAYS = 30


class ValidityPeriodValidator(CertificateValidator):
    """Compare notBefore/notAfter with the current time.

    Inside the warning window the certificate is still valid, but the message
    says it expires soon.
    """

    name = "Validity"

    def __init__(self, warning_days: Optional[int] = None, clock: Callable = utcnow):
        self.warning_days = DEFAULT_WARNING_DAYS if warning_days is None else warning_days
        self.clock = clock

    def validate(self, certificate, chain):
        try:
            now = self.clock()
            not_before, not_after = validity_window(certificate)
            if now < not_before:
                logger.error("Certificate is not yet valid: %s", not_before)
                return ValidationCheckResult.failure(
                    f"Certificate is not yet valid until {format_date(not_before)}",
                    "CERTIFICATE_NOT_YET_VALID",
                    f"ValidFrom: {format_date(not_before)}",
                )
            if now > not_after:
                logger.error("Certificate has expired: %s", not_after)
                return ValidationCheckResult.failure(
                    f"Certificate has expired on {format_date(not_after)}",
                    "CERTIFICATE_EXPIRED",
                    f"ExpiredAt: {format_date(not_after)}",
                )

            days = (not_after - now).days
            details = (f"NotBefore: {format_date(not_before)}, NotAfter: {format_date(not_after)}, "
                       f"DaysRemaining: {days}")
            if days <= self.warning_days:
                logger.warning("Certificate expires in %d days", days)
                return ValidationCheckResult.success(
                    f"Certificate is valid but expires soon in {days} days", details,
                )
            return ValidationCheckResult.success(f"Certificate is valid ({days} days remaining)", details)
        except (ValueError, TypeError) as e:
            logger.error("Validity period validation error: %s", e)
            return ValidationCheckResult.failure(
                f"Validity period validation failed: {e}", "VALIDITY_VALIDATION_ERROR",
            )
