"""Tests for ACME order orchestration."""

import unittest
from unittest.mock import MagicMock

import requests
from acme import errors as acme_errors
from acme import messages
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa

from autocert.acme_account import AcmeConfig, generate_key_pair
from autocert.acme_order import AcmeOrderService, OrderResult, OrderState, build_csr
from autocert.challenge.base import ChallengeOutcome
from autocert.challenge.registry import ChallengeHandlerRegistry
from autocert.errors import (
    AcmeProtocolError,
    AcmeTimeoutError,
    CertificateError,
    ConfigurationError,
    ErrorCode,
    OperationCancelledError,
)
from autocert.models import ChallengeType
from autocert.utils.helpers import Deadline

from certgen import issued_fullchain


def _authzr(domain="example.com", status=messages.STATUS_PENDING, offered=("dns-01", "http-01")):
    authzr = MagicMock()
    authzr.body.identifier.value = domain
    authzr.body.status = status
    challenges = []
    for typ in offered:
        challb = MagicMock()
        challb.chall.typ = typ
        challenges.append(challb)
    authzr.body.challenges = challenges
    return authzr


def _handler(challenge_type=ChallengeType.DNS_01, outcome=None):
    handler = MagicMock()
    handler.challenge_type = challenge_type
    handler.validate.return_value = outcome or ChallengeOutcome(
        success=True, challenge_type=challenge_type.value, status="valid", attempts=1,
    )
    return handler


class TestBuildCsr(unittest.TestCase):

    def test_csr_contents(self):
        key = generate_key_pair("RSA", 2048)
        csr = x509.load_pem_x509_csr(build_csr("example.com", key))
        self.assertTrue(csr.is_signature_valid)
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        self.assertEqual(san.get_values_for_type(x509.DNSName), ["example.com"])
        self.assertEqual(csr.subject.rfc4514_string(), "CN=example.com")

    def test_long_domain_omits_common_name(self):
        domain = ("a" * 60) + ".example.com"
        csr = x509.load_pem_x509_csr(build_csr(domain, generate_key_pair("RSA", 2048)))
        self.assertEqual(len(csr.subject), 0)


class TestOrderResult(unittest.TestCase):

    def test_success_does_not_raise(self):
        OrderResult(success=True, domain="example.com").raise_for_error()

    def test_error_mapping(self):
        cases = [
            (ErrorCode.ACME_PROTOCOL_ERROR, AcmeProtocolError),
            (ErrorCode.TIMEOUT_ERROR, AcmeTimeoutError),
            (ErrorCode.OPERATION_CANCELLED, OperationCancelledError),
            (ErrorCode.CONFIGURATION_ERROR, ConfigurationError),
            (ErrorCode.CONNECTION_ERROR, CertificateError),
        ]
        for code, exc_type in cases:
            result = OrderResult(success=False, domain="example.com", error="boom", error_code=code)
            with self.assertRaises(exc_type) as ctx:
                result.raise_for_error()
            self.assertEqual(ctx.exception.code, code)


class TestAcmeOrderService(unittest.TestCase):

    def setUp(self):
        self.fullchain, _ = issued_fullchain("example.com")
        self.client = MagicMock()
        self.authzr = _authzr()
        self.order = MagicMock()
        self.order.authorizations = [self.authzr]
        self.client.new_order.return_value = self.order
        self.client.begin_finalization.return_value = self.order
        self.final = MagicMock()
        self.final.fullchain_pem = self.fullchain
        self.client.poll_finalization.return_value = self.final

        self.accounts = MagicMock()
        self.accounts.get_acme_account.return_value = self.client

        self.handler = _handler()
        self.config = AcmeConfig(directory_url="https://acme.test/directory",
                                 order_timeout=3, poll_interval=1)
        self.service = AcmeOrderService(
            self.accounts, ChallengeHandlerRegistry([self.handler]), self.config,
        )

    def test_issue_success(self):
        result = self.service.issue_certificate("example.com")

        self.assertTrue(result.success)
        self.assertEqual(result.state, OrderState.VALID)
        self.assertIn("BEGIN CERTIFICATE", result.certificate_pem)
        self.assertIn("BEGIN CERTIFICATE", result.chain_pem)
        self.assertNotEqual(result.certificate_pem.strip(), result.chain_pem.strip())
        self.assertIn("BEGIN PRIVATE KEY", result.private_key_pem)

        key = x509.load_pem_x509_csr(self.client.new_order.call_args.args[0]).public_key()
        self.assertIsInstance(key, rsa.RSAPublicKey)
        self.assertEqual(key.key_size, 2048)
        self.handler.prepare.assert_called_once()
        self.handler.cleanup.assert_called_once()

    def test_finalization_completes_after_two_polls(self):
        self.client.poll_finalization.side_effect = [acme_errors.TimeoutError(), self.final]
        result = self.service.issue_certificate("example.com")
        self.assertTrue(result.success)
        self.assertEqual(result.attempts, 2)
        self.assertEqual(self.client.poll_finalization.call_count, 2)

    def test_finalization_timeout(self):
        self.client.poll_finalization.side_effect = acme_errors.TimeoutError()
        result = self.service.issue_certificate("example.com")
        self.assertFalse(result.success)
        self.assertEqual(result.state, OrderState.TIMEOUT)
        self.assertEqual(result.error_code, ErrorCode.TIMEOUT_ERROR)
        self.assertEqual(result.attempts, 3)

    def test_order_invalid(self):
        error = messages.Error(typ="urn:ietf:params:acme:error:badCSR", detail="bad key")
        self.client.poll_finalization.side_effect = acme_errors.IssuanceError(error)
        result = self.service.issue_certificate("example.com")
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, ErrorCode.ACME_PROTOCOL_ERROR)
        self.assertIn("bad key", result.ca_error)

    def test_challenge_invalid_carries_ca_error(self):
        self.handler.validate.return_value = ChallengeOutcome(
            success=False, challenge_type="dns-01", status="invalid",
            error="DNS problem: NXDOMAIN looking up TXT",
        )
        result = self.service.issue_certificate("example.com")
        self.assertFalse(result.success)
        self.assertEqual(result.state, OrderState.INVALID)
        self.assertEqual(result.error_code, ErrorCode.ACME_PROTOCOL_ERROR)
        self.assertIn("DNS problem", result.error)
        self.assertIn("NXDOMAIN", result.ca_error)
        self.handler.cleanup.assert_called_once()
        self.client.begin_finalization.assert_not_called()

    def test_challenge_timeout(self):
        self.handler.validate.return_value = ChallengeOutcome(
            success=False, challenge_type="dns-01", status="pending", attempts=100, timed_out=True,
        )
        result = self.service.issue_certificate("example.com")
        self.assertEqual(result.error_code, ErrorCode.TIMEOUT_ERROR)
        self.assertEqual(result.attempts, 100)

    def test_cleanup_runs_when_prepare_fails(self):
        self.handler.prepare.side_effect = CertificateError("Failed to add DNS TXT record")
        result = self.service.issue_certificate("example.com")
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, ErrorCode.CERTIFICATE_ERROR)
        self.handler.cleanup.assert_called_once()
        self.handler.validate.assert_not_called()

    def test_cleanup_failure_does_not_mask_result(self):
        self.handler.cleanup.side_effect = RuntimeError("cleanup broke")
        result = self.service.issue_certificate("example.com")
        self.assertTrue(result.success)

    def test_already_valid_authorization_skipped(self):
        self.order.authorizations = [_authzr(status=messages.STATUS_VALID)]
        result = self.service.issue_certificate("example.com")
        self.assertTrue(result.success)
        self.handler.prepare.assert_not_called()

    def test_challenge_type_not_offered(self):
        self.order.authorizations = [_authzr(offered=("http-01",))]
        result = self.service.issue_certificate("example.com")
        self.assertFalse(result.success)
        self.assertIn("dns-01 challenge not offered", result.error)

    def test_unsupported_challenge_type(self):
        result = self.service.issue_certificate("example.com", challenge_type="http-01")
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, ErrorCode.CONFIGURATION_ERROR)
        self.accounts.get_or_create_default_account.assert_not_called()

    def test_ca_unreachable(self):
        self.client.new_order.side_effect = requests.ConnectionError("refused")
        result = self.service.issue_certificate("example.com")
        self.assertEqual(result.error_code, ErrorCode.CONNECTION_ERROR)

    def test_cancelled(self):
        deadline = Deadline.none()
        deadline.cancel()
        result = self.service.issue_certificate("example.com", deadline=deadline)
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, ErrorCode.OPERATION_CANCELLED)


if __name__ == "__main__":
    unittest.main()
