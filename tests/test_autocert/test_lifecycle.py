"""Tests for the certificate lifecycle service."""

import os
import threading
import time
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from autocert.acme_account import AcmeConfig
from autocert.acme_order import OrderResult, OrderState
from autocert.encryption import CertificateEncryption, EncryptionConfig
from autocert.errors import (
    AcmeProtocolError,
    CertificateError,
    DistributionError,
    DuplicateResourceError,
    ErrorCode,
    ResourceNotFoundError,
    ValidationError,
)
from autocert.lifecycle import CertificateService
from autocert.models import Certificate, CertificateStatus, ChallengeType, Server
from autocert.store import CertificateStore, ServerStore

from certgen import key_pem, make_leaf, new_key, to_pem


def _issued(domain, days=90):
    leaf, key = make_leaf((domain,), days=days)
    return OrderResult(
        success=True, domain=domain, certificate_pem=to_pem(leaf),
        private_key_pem=key_pem(key), chain_pem="", state=OrderState.VALID,
    )


def _failed(domain, error="Challenge validation failed for x: DNS problem: NXDOMAIN"):
    return OrderResult(
        success=False, domain=domain, state=OrderState.INVALID, error=error,
        error_code=ErrorCode.ACME_PROTOCOL_ERROR, ca_error="DNS problem: NXDOMAIN",
    )


class LifecycleTestCase(unittest.TestCase):

    def setUp(self):
        self.store = CertificateStore()
        self.servers = ServerStore()
        self.orders = MagicMock()
        self.orders.config = AcmeConfig(directory_url="https://acme.test/directory")
        self.orders.issue_certificate.side_effect = lambda domain, *a, **kw: _issued(domain)
        self.encryption = CertificateEncryption(EncryptionConfig(key=os.urandom(32)))
        self.distribution = MagicMock()
        self.service = CertificateService(
            self.store, self.orders, server_store=self.servers,
            encryption=self.encryption, distribution_service=self.distribution,
        )


class TestCreate(LifecycleTestCase):

    def test_create_active(self):
        cert = self.service.create("Example.COM", challenge_type="http-01")

        self.assertEqual(cert.domain, "example.com")
        self.assertEqual(cert.status, CertificateStatus.ACTIVE)
        self.assertEqual(cert.challenge_type, "http-01")
        self.assertEqual(cert.days_until_expiry(), 90)
        self.assertLess(cert.issued_at, datetime.now(timezone.utc))
        self.assertIn("BEGIN CERTIFICATE", cert.certificate_pem)
        self.assertEqual(cert.last_error, "")
        args = self.orders.issue_certificate.call_args.args
        self.assertEqual(args[:2], ("example.com", ChallengeType.HTTP_01))

    def test_private_key_encrypted_at_rest(self):
        cert = self.service.create("example.com")
        stored = self.store.get(cert.certificate_id)
        self.assertNotIn("BEGIN", stored.private_key_pem)
        self.assertTrue(CertificateEncryption.is_encrypted(stored.private_key_pem))
        self.assertIn("BEGIN PRIVATE KEY", self.service.decrypt_private_key(stored))

    def test_default_challenge_from_config(self):
        self.service.create("example.com")
        self.assertEqual(self.orders.issue_certificate.call_args.args[1], ChallengeType.DNS_01)

    def test_duplicate_domain_makes_no_ca_call(self):
        self.service.create("example.com")
        self.orders.issue_certificate.reset_mock()
        with self.assertRaises(DuplicateResourceError):
            self.service.create("EXAMPLE.com")
        self.orders.issue_certificate.assert_not_called()
        self.assertEqual(self.store.count(), 1)

    def test_empty_domain(self):
        with self.assertRaises(ValidationError):
            self.service.create("  ")

    def test_unknown_server(self):
        with self.assertRaises(ResourceNotFoundError):
            self.service.create("example.com", server_id="nope")
        self.assertEqual(self.store.count(), 0)

    def test_failure_leaves_record_failed(self):
        self.orders.issue_certificate.side_effect = lambda domain, *a, **kw: _failed(domain)
        with self.assertRaises(AcmeProtocolError):
            self.service.create("example.com")
        cert = self.store.find_by_domain("example.com")
        self.assertEqual(cert.status, CertificateStatus.FAILED)
        self.assertIn("DNS problem", cert.last_error)

    def test_unexpected_error_wrapped(self):
        self.orders.issue_certificate.side_effect = RuntimeError("kaboom")
        with self.assertRaises(CertificateError) as ctx:
            self.service.create("example.com")
        self.assertIn("kaboom", ctx.exception.message)
        self.assertEqual(self.store.find_by_domain("example.com").status, CertificateStatus.FAILED)

    def test_concurrent_create_single_issuance(self):
        def slow_issue(domain, *args, **kwargs):
            time.sleep(0.1)
            return _issued(domain)

        self.orders.issue_certificate.side_effect = slow_issue
        errors = []

        def worker():
            try:
                self.service.create("example.com")
            except DuplicateResourceError as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(self.orders.issue_certificate.call_count, 1)
        self.assertEqual(len(errors), 2)
        self.assertEqual(self.store.count(), 1)

    def test_concurrent_create_different_domains(self):
        def slow_issue(domain, *args, **kwargs):
            time.sleep(0.01)
            return _issued(domain)

        self.orders.issue_certificate.side_effect = slow_issue
        errors = []

        def worker(n):
            try:
                self.service.create(f"host{n}.example.com")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        self.assertEqual(self.store.count(), 20)
        self.assertEqual(len(self.store.by_status(CertificateStatus.ACTIVE)), 20)

    def test_create_logs_fingerprint(self):
        with self.assertLogs("autocert.lifecycle", level="INFO") as logs:
            self.service.create("example.com")
        self.assertTrue(any("SHA-256" in line for line in logs.output))

    def test_auto_deploy(self):
        server = self.servers.save(Server(name="web", ip_address="10.0.0.1"))
        self.distribution.is_ready_for_deployment.return_value = True
        cert = self.service.create("example.com", server_id=server.server_id, auto_deploy=True)
        deployed_cert, key = self.distribution.deploy.call_args.args
        self.assertEqual(deployed_cert.certificate_id, cert.certificate_id)
        self.assertIn("BEGIN PRIVATE KEY", key)

    def test_auto_deploy_failure_does_not_fail_issuance(self):
        self.distribution.is_ready_for_deployment.return_value = True
        self.distribution.deploy.side_effect = RuntimeError("ssh down")
        cert = self.service.create("example.com", auto_deploy=True)
        self.assertEqual(cert.status, CertificateStatus.ACTIVE)


class TestRenew(LifecycleTestCase):

    def test_renew_replaces_key(self):
        cert = self.service.create("example.com")
        old_key = self.service.decrypt_private_key(cert)
        old_pem = cert.certificate_pem

        renewed = self.service.renew(cert.certificate_id)
        self.assertEqual(renewed.status, CertificateStatus.ACTIVE)
        self.assertEqual(renewed.renewal_attempts, 1)
        self.assertNotEqual(renewed.certificate_pem, old_pem)
        self.assertNotEqual(self.service.decrypt_private_key(renewed), old_key)

    def test_renew_failure_goes_through_renewing(self):
        cert = self.service.create("example.com")
        seen = []

        def failing_issue(domain, *args, **kwargs):
            seen.append(self.store.get(cert.certificate_id).status)
            return _failed(domain)

        self.orders.issue_certificate.side_effect = failing_issue
        with self.assertRaises(AcmeProtocolError):
            self.service.renew(cert.certificate_id)

        self.assertEqual(seen, [CertificateStatus.RENEWING])
        stored = self.store.get(cert.certificate_id)
        self.assertEqual(stored.status, CertificateStatus.FAILED)
        self.assertIn("dns problem", stored.last_error.lower())

    def test_renew_rejected_while_renewal_in_flight(self):
        cert = self.service.create("example.com")
        nested = []

        def issue_and_renew_again(domain, *args, **kwargs):
            def second_renew():
                try:
                    self.service.renew(cert.certificate_id)
                except CertificateError as e:
                    nested.append(e)

            t = threading.Thread(target=second_renew)
            t.start()
            t.join()
            return _issued(domain)

        self.orders.issue_certificate.reset_mock()
        self.orders.issue_certificate.side_effect = issue_and_renew_again
        renewed = self.service.renew(cert.certificate_id)

        self.assertEqual(renewed.status, CertificateStatus.ACTIVE)
        self.assertEqual(renewed.renewal_attempts, 1)
        self.assertEqual(self.orders.issue_certificate.call_count, 1)
        self.assertEqual(len(nested), 1)
        self.assertIn("in progress", nested[0].message)

    def test_renew_rejects_pending(self):
        cert = self.store.save(Certificate(domain="example.com"))
        with self.assertRaises(CertificateError):
            self.service.renew(cert.certificate_id)
        self.orders.issue_certificate.assert_not_called()

    def test_renew_expired_allowed(self):
        cert = self.service.create("example.com")
        cert.status = CertificateStatus.EXPIRED
        self.store.save(cert)
        self.assertEqual(self.service.renew(cert.certificate_id).status, CertificateStatus.ACTIVE)

    def test_renew_missing(self):
        with self.assertRaises(ResourceNotFoundError):
            self.service.renew("missing")


class TestExpiry(LifecycleTestCase):

    def _cert(self, domain, days, status=CertificateStatus.ACTIVE, alert_days=7):
        return self.store.save(Certificate(
            domain=domain, status=status, alert_days_before_expiry=alert_days,
            expires_at=datetime.now(timezone.utc) + timedelta(days=days, hours=1),
        ))

    def test_find_expiring(self):
        soon = self._cert("soon.example.com", 10)
        self._cert("later.example.com", 60)
        self.assertEqual(self.service.find_expiring_certificates(30), [soon])

    def test_refresh_statuses(self):
        expiring = self._cert("a.example.com", 5)
        expired = self._cert("b.example.com", -2)
        fine = self._cert("c.example.com", 60)
        failed = self._cert("d.example.com", -2, status=CertificateStatus.FAILED)

        counts = self.service.refresh_statuses()
        self.assertEqual(counts, {"expiring_soon": 1, "expired": 1})
        self.assertEqual(self.store.get(expiring.certificate_id).status, CertificateStatus.EXPIRING_SOON)
        self.assertEqual(self.store.get(expired.certificate_id).status, CertificateStatus.EXPIRED)
        self.assertEqual(self.store.get(fine.certificate_id).status, CertificateStatus.ACTIVE)
        self.assertEqual(self.store.get(failed.certificate_id).status, CertificateStatus.FAILED)

    def test_expiring_soon_moves_to_expired(self):
        cert = self._cert("a.example.com", -1, status=CertificateStatus.EXPIRING_SOON)
        self.service.refresh_statuses()
        self.assertEqual(self.store.get(cert.certificate_id).status, CertificateStatus.EXPIRED)


class TestKeysAndDeploy(LifecycleTestCase):

    def test_decrypt_plaintext_passthrough(self):
        pem = key_pem(new_key())
        cert = Certificate(domain="legacy.example.com", private_key_pem=pem)
        self.assertEqual(self.service.decrypt_private_key(cert), pem)

    def test_deploy(self):
        cert = self.service.create("example.com")
        self.distribution.is_ready_for_deployment.return_value = True
        self.distribution.deploy.return_value = True
        self.assertTrue(self.service.deploy(cert.certificate_id))

    def test_deploy_not_ready(self):
        cert = self.service.create("example.com")
        self.distribution.is_ready_for_deployment.return_value = False
        with self.assertRaises(DistributionError):
            self.service.deploy(cert.certificate_id)

    def test_deploy_without_distribution(self):
        service = CertificateService(self.store, self.orders, encryption=self.encryption)
        cert = service.create("example.com")
        with self.assertRaises(DistributionError):
            service.deploy(cert.certificate_id)


class TestCrud(LifecycleTestCase):

    def test_update(self):
        cert = self.service.create("example.com")
        updated = self.service.update(cert.certificate_id, admin="ops@example.com", alert_days_before_expiry=14)
        self.assertEqual(updated.admin, "ops@example.com")
        self.assertEqual(updated.alert_days_before_expiry, 14)

    def test_update_unknown_field(self):
        cert = self.service.create("example.com")
        with self.assertRaises(ValidationError):
            self.service.update(cert.certificate_id, certificate_pem="x")

    def test_update_duplicate_domain(self):
        first = self.service.create("a.example.com")
        second = self.service.create("b.example.com")
        for cert, taken in ((first, "b.example.com"), (second, "A.example.com")):
            with self.assertRaises(DuplicateResourceError):
                self.service.update(cert.certificate_id, domain=taken)

        self.assertEqual(self.service.get(first.certificate_id).domain, "a.example.com")
        self.assertEqual(self.service.get(second.certificate_id).domain, "b.example.com")

    def test_listing(self):
        self.service.create("a.example.com")
        self.service.create("b.example.org")
        self.assertEqual(self.service.list_page(0, 1).total, 2)
        self.assertEqual(len(self.service.search("example.org")), 1)
        self.assertEqual(self.service.by_status("active").total, 2)
        self.assertEqual(self.service.get_by_domain("a.example.com").domain, "a.example.com")

    def test_delete(self):
        cert = self.service.create("example.com")
        self.service.delete(cert.certificate_id)
        with self.assertRaises(ResourceNotFoundError):
            self.service.get(cert.certificate_id)


if __name__ == "__main__":
    unittest.main()
