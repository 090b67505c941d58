"""Tests for the data model."""

import unittest
from datetime import datetime, timedelta, timezone

from autocert.errors import ConfigurationError, ValidationError
from autocert.models import (
    AccountStatus,
    AcmeAccount,
    Certificate,
    CertificateStatus,
    ChallengeType,
    Deployment,
    DeploymentStatus,
    Server,
    WebServerType,
)


class TestCertificateStatus(unittest.TestCase):

    def test_renewable(self):
        self.assertTrue(CertificateStatus.ACTIVE.is_renewable)
        self.assertTrue(CertificateStatus.EXPIRING_SOON.is_renewable)
        self.assertTrue(CertificateStatus.EXPIRED.is_renewable)
        self.assertFalse(CertificateStatus.PENDING.is_renewable)
        self.assertFalse(CertificateStatus.FAILED.is_renewable)

    def test_valid_and_processing(self):
        self.assertTrue(CertificateStatus.ACTIVE.is_valid)
        self.assertFalse(CertificateStatus.EXPIRED.is_valid)
        self.assertTrue(CertificateStatus.RENEWING.is_processing)
        self.assertFalse(CertificateStatus.ACTIVE.is_processing)


class TestChallengeType(unittest.TestCase):

    def test_from_value(self):
        self.assertEqual(ChallengeType.from_value("http-01"), ChallengeType.HTTP_01)
        self.assertEqual(ChallengeType.from_value(" DNS-01 "), ChallengeType.DNS_01)
        self.assertEqual(ChallengeType.from_value(ChallengeType.HTTP_01), ChallengeType.HTTP_01)

    def test_default_is_dns(self):
        self.assertEqual(ChallengeType.from_value(None), ChallengeType.DNS_01)
        self.assertEqual(ChallengeType.from_value(""), ChallengeType.DNS_01)

    def test_unknown_rejected(self):
        with self.assertRaises(ConfigurationError):
            ChallengeType.from_value("smtp-01")


class TestWebServerType(unittest.TestCase):

    def test_from_code(self):
        self.assertEqual(WebServerType.from_code("NGINX"), WebServerType.NGINX)

    def test_unknown_code(self):
        with self.assertRaises(ValidationError):
            WebServerType.from_code("lighttpd")


class TestCertificate(unittest.TestCase):

    def test_days_until_expiry(self):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        cert = Certificate(domain="example.com", expires_at=now + timedelta(days=90))
        self.assertEqual(cert.days_until_expiry(now), 90)
        self.assertFalse(cert.is_expired(now))
        self.assertTrue(cert.is_expired(now + timedelta(days=91)))

    def test_no_expiry(self):
        cert = Certificate(domain="example.com")
        self.assertIsNone(cert.days_until_expiry())
        self.assertFalse(cert.is_expired())

    def test_dict_roundtrip(self):
        cert = Certificate(
            domain="example.com",
            status=CertificateStatus.ACTIVE,
            expires_at=datetime(2025, 4, 1, tzinfo=timezone.utc),
            server_id="srv1",
            auto_deploy=True,
        )
        restored = Certificate.from_dict(cert.to_dict())
        self.assertEqual(restored.certificate_id, cert.certificate_id)
        self.assertEqual(restored.status, CertificateStatus.ACTIVE)
        self.assertEqual(restored.expires_at, cert.expires_at)
        self.assertTrue(restored.auto_deploy)

    def test_naive_datetimes_treated_as_utc(self):
        cert = Certificate.from_dict({"domain": "a.com", "expires_at": "2025-04-01T00:00:00"})
        self.assertEqual(cert.expires_at.tzinfo, timezone.utc)


class TestOtherRecords(unittest.TestCase):

    def test_server_defaults(self):
        server = Server(name="web1", ip_address="10.0.0.1")
        self.assertEqual(server.port, 22)
        self.assertEqual(server.web_server_type, WebServerType.NGINX)
        self.assertEqual(Server.from_dict(server.to_dict()).ip_address, "10.0.0.1")

    def test_account_active(self):
        account = AcmeAccount(email="a@b.c", server_url="https://acme")
        self.assertTrue(account.is_active)
        account.status = AccountStatus.DEACTIVATED
        self.assertFalse(AcmeAccount.from_dict(account.to_dict()).is_active)

    def test_deployment_terminal(self):
        dep = Deployment(certificate_id="c1", server_id="s1")
        self.assertFalse(dep.is_terminal)
        dep.status = DeploymentStatus.FAILED
        self.assertTrue(dep.is_terminal)


if __name__ == "__main__":
    unittest.main()
