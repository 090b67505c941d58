"""Certificate lifecycle: issue, renew, expire and hand off for deployment."""

import dataclasses
import logging
import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from autocert.acme_order import AcmeOrderService, OrderResult
from autocert.encryption import CertificateEncryption, get_default_encryption
from autocert.errors import (
    AutoCertError,
    CertificateError,
    DistributionError,
    DuplicateResourceError,
    ResourceNotFoundError,
    ValidationError,
)
from autocert.models import Certificate, CertificateStatus, ChallengeType
from autocert.store import CertificateStore, Page, ServerStore, paginate
from autocert.utils.helpers import Deadline, fingerprint, load_certificate, validity_window

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "domain", "admin", "alert_days_before_expiry", "auto_deploy", "server_id",
    "challenge_type", "status",
)


class CertificateService:
    """Owns every Certificate state transition.

    ``create`` and ``renew`` leave a record ACTIVE on success and FAILED with
    ``last_error`` set on any failure; they never return with the record still
    PENDING or RENEWING.
    """

    def __init__(
        self,
        certificate_store: CertificateStore,
        order_service: AcmeOrderService,
        server_store: Optional[ServerStore] = None,
        encryption: Optional[CertificateEncryption] = None,
        distribution_service=None,
    ):
        self.store = certificate_store
        self.order_service = order_service
        self.server_store = server_store
        self.encryption = encryption or get_default_encryption()
        self.distribution_service = distribution_service
        self._locks_guard = threading.Lock()
        self._domain_locks: dict = defaultdict(threading.Lock)

    def _domain_lock(self, domain: str) -> threading.Lock:
        with self._locks_guard:
            return self._domain_locks[domain.lower()]

    # ---- Issuance ----

    def create(
        self,
        domain: str,
        challenge_type: Union[ChallengeType, str, None] = None,
        server_id: Optional[str] = None,
        admin: str = "",
        alert_days: int = 7,
        auto_deploy: bool = False,
        deadline: Optional[Deadline] = None,
    ) -> Certificate:
        """Issue a certificate for a new domain.

        Raises:
            DuplicateResourceError: the domain is already managed. No CA call
                is made.
            CertificateError: issuance failed; the record is left FAILED.
        """
        domain = (domain or "").strip().lower()
        if not domain:
            raise ValidationError("Domain is required")
        challenge = ChallengeType.from_value(
            challenge_type if challenge_type is not None else self.order_service.config.default_challenge
        )
        if server_id:
            self._require_server(server_id)

        logger.info("Creating certificate for domain: %s", domain)
        with self._domain_lock(domain):
            if self.store.exists_by_domain(domain):
                raise DuplicateResourceError(f"Domain already exists: {domain}")

            certificate = self.store.save(Certificate(
                domain=domain,
                status=CertificateStatus.PENDING,
                challenge_type=challenge.value,
                server_id=server_id,
                admin=admin,
                alert_days_before_expiry=alert_days,
                auto_deploy=auto_deploy,
            ))

            try:
                result = self.order_service.issue_certificate(domain, challenge, deadline)
                result.raise_for_error()
                self._apply_issued(certificate, result)
            except Exception as e:
                self._mark_failed(certificate, e)
                logger.error("Failed to issue certificate for domain %s: %s", domain, e)
                if isinstance(e, AutoCertError):
                    raise
                raise CertificateError(f"Certificate issuance failed: {e}")

        logger.info("Certificate created successfully for domain: %s (id=%s)",
                    domain, certificate.certificate_id)
        if certificate.auto_deploy:
            self._auto_deploy(certificate)
        return certificate

    def renew(self, certificate_id: str, auto_deploy: Optional[bool] = None,
              deadline: Optional[Deadline] = None) -> Certificate:
        """Re-issue a certificate with a brand-new key.

        Only ACTIVE, EXPIRING_SOON and EXPIRED certificates can be renewed. A
        renew while another operation holds the domain is rejected rather than
        queued behind it.
        """
        domain = self.get(certificate_id).domain
        lock = self._domain_lock(domain)
        if not lock.acquire(blocking=False):
            raise CertificateError(f"Another operation is in progress for {domain}")
        try:
            certificate = self.get(certificate_id)
            if not certificate.status.is_renewable:
                raise CertificateError(
                    f"Certificate {certificate_id} cannot be renewed in status {certificate.status.value}"
                )

            logger.info("Renewing certificate: %s (%s)", certificate_id, certificate.domain)
            certificate.status = CertificateStatus.RENEWING
            certificate.renewal_attempts += 1
            self.store.save(certificate)

            try:
                result = self.order_service.issue_certificate(
                    certificate.domain, certificate.challenge_type, deadline,
                )
                result.raise_for_error()
                self._apply_issued(certificate, result)
            except Exception as e:
                self._mark_failed(certificate, e)
                logger.error("Failed to renew certificate %s: %s", certificate_id, e)
                if isinstance(e, AutoCertError):
                    raise
                raise CertificateError(f"Certificate renewal failed: {e}")
        finally:
            lock.release()

        logger.info("Certificate renewed successfully: %s", certificate.domain)
        if certificate.auto_deploy if auto_deploy is None else auto_deploy:
            self._auto_deploy(certificate)
        return certificate

    def _apply_issued(self, certificate: Certificate, result: OrderResult) -> None:
        """Store the issued material; dates come from the certificate itself."""
        parsed = load_certificate(result.certificate_pem)
        certificate.issued_at, certificate.expires_at = validity_window(parsed)
        certificate.certificate_pem = result.certificate_pem
        certificate.chain_pem = result.chain_pem
        certificate.private_key_pem = self.encryption.encrypt(result.private_key_pem)
        certificate.status = CertificateStatus.ACTIVE
        certificate.last_error = ""
        self.store.save(certificate)
        logger.info("Stored certificate for %s (SHA-256 %s, expires %s)",
                    certificate.domain, fingerprint(parsed), certificate.expires_at.isoformat())

    def _mark_failed(self, certificate: Certificate, error: Exception) -> None:
        certificate.status = CertificateStatus.FAILED
        certificate.last_error = str(error) or type(error).__name__
        try:
            self.store.save(certificate)
        except AutoCertError:
            logger.exception("Could not record failure for %s", certificate.domain)

    # ---- Expiry ----

    def find_expiring_certificates(self, days_before_expiry: int,
                                   now: Optional[datetime] = None) -> list[Certificate]:
        """Certificates whose expiry falls within the next ``days_before_expiry`` days."""
        now = now or datetime.now(timezone.utc)
        return self.store.expiring_before(now + timedelta(days=days_before_expiry))

    def refresh_statuses(self, now: Optional[datetime] = None) -> dict:
        """Move certificates into EXPIRING_SOON or EXPIRED by date.

        Returns:
            Counts of transitions, keyed by the new status value.
        """
        now = now or datetime.now(timezone.utc)
        changed = {CertificateStatus.EXPIRING_SOON.value: 0, CertificateStatus.EXPIRED.value: 0}
        for certificate in self.store.list_all():
            if not certificate.status.is_valid or not certificate.expires_at:
                continue
            if certificate.is_expired(now):
                new_status = CertificateStatus.EXPIRED
            elif (certificate.status == CertificateStatus.ACTIVE
                  and certificate.days_until_expiry(now) <= certificate.alert_days_before_expiry):
                new_status = CertificateStatus.EXPIRING_SOON
            else:
                continue
            logger.info("Certificate %s: %s -> %s",
                        certificate.domain, certificate.status.value, new_status.value)
            certificate.status = new_status
            self.store.save(certificate)
            changed[new_status.value] += 1
        return changed

    # ---- Keys and deployment ----

    def decrypt_private_key(self, certificate: Certificate) -> str:
        """Plaintext PEM key; records stored before encryption pass through."""
        if not self.encryption.is_encrypted(certificate.private_key_pem):
            return certificate.private_key_pem
        return self.encryption.decrypt(certificate.private_key_pem)

    def deploy(self, certificate_id: str) -> bool:
        if self.distribution_service is None:
            raise DistributionError("No distribution service configured")
        certificate = self.get(certificate_id)
        if not self.distribution_service.is_ready_for_deployment(certificate):
            raise DistributionError(f"Certificate {certificate.domain} is not ready for deployment")
        return self.distribution_service.deploy(certificate, self.decrypt_private_key(certificate))

    def _auto_deploy(self, certificate: Certificate) -> None:
        if self.distribution_service is None:
            logger.warning("Auto-deploy requested for %s but no distribution service is set",
                           certificate.domain)
            return
        try:
            if self.distribution_service.is_ready_for_deployment(certificate):
                self.distribution_service.deploy(certificate, self.decrypt_private_key(certificate))
            else:
                logger.warning("Skipping auto-deploy of %s: not ready for deployment",
                               certificate.domain)
        except Exception:
            logger.exception("Auto-deploy failed for %s", certificate.domain)

    # ---- CRUD ----

    def get(self, certificate_id: str) -> Certificate:
        certificate = self.store.get(certificate_id)
        if not certificate:
            raise ResourceNotFoundError(f"Certificate not found: {certificate_id}")
        return certificate

    def get_by_domain(self, domain: str) -> Certificate:
        certificate = self.store.find_by_domain(domain)
        if not certificate:
            raise ResourceNotFoundError(f"Certificate not found for domain: {domain}")
        return certificate

    def list_page(self, page: int = 0, size: int = 20) -> Page:
        return self.store.list_page(page, size)

    def by_status(self, status: Union[CertificateStatus, str], page: int = 0, size: int = 20) -> Page:
        return paginate(self.store.by_status(CertificateStatus(status)), page, size)

    def search(self, pattern: str) -> list[Certificate]:
        return self.store.search(pattern)

    def update(self, certificate_id: str, **fields) -> Certificate:
        """Change editable fields. Unknown field names raise ValidationError."""
        certificate = self.get(certificate_id)
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        if fields.get("server_id"):
            self._require_server(fields["server_id"])
        if "status" in fields:
            fields["status"] = CertificateStatus(fields["status"])
        if "domain" in fields:
            fields["domain"] = fields["domain"].strip().lower()
        if "challenge_type" in fields:
            fields["challenge_type"] = ChallengeType.from_value(fields["challenge_type"]).value
        return self.store.save(dataclasses.replace(certificate, **fields))

    def delete(self, certificate_id: str) -> None:
        certificate = self.get(certificate_id)
        self.store.delete(certificate_id)
        logger.info("Certificate deleted: %s (%s)", certificate_id, certificate.domain)

    def _require_server(self, server_id: str) -> None:
        if self.server_store is not None and not self.server_store.get(server_id):
            raise ResourceNotFoundError(f"Server not found: {server_id}")
