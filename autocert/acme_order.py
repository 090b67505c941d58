"""ACME order orchestration: authorize, finalize, download."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

import requests
from acme import errors as acme_errors
from acme import messages
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import NameOID

from autocert.acme_account import AcmeAccountService, AcmeConfig, generate_key_pair
from autocert.challenge.base import AcmeChallenge, ChallengeHandler
from autocert.challenge.registry import ChallengeHandlerRegistry
from autocert.errors import (
    AcmeProtocolError,
    AcmeTimeoutError,
    AutoCertError,
    CertificateError,
    ConfigurationError,
    ErrorCode,
    OperationCancelledError,
)
from autocert.models import ChallengeType
from autocert.utils.helpers import Deadline, private_key_pem, split_fullchain

logger = logging.getLogger(__name__)

# X.509 caps the commonName attribute at 64 characters.
MAX_COMMON_NAME_LENGTH = 64


class OrderState(str, Enum):
    CREATED = "created"
    AUTHORIZING = "authorizing"
    CSR_SUBMITTED = "csr_submitted"
    PENDING_FINALIZE = "pending_finalize"
    VALID = "valid"
    INVALID = "invalid"
    TIMEOUT = "timeout"


@dataclass
class OrderResult:
    """Outcome of one issuance attempt.

    On success it holds the freshly generated key in plaintext, so callers
    must encrypt it before it is stored anywhere.
    """

    success: bool
    domain: str
    certificate_pem: str = ""
    private_key_pem: str = ""
    chain_pem: str = ""
    state: OrderState = OrderState.CREATED
    message: str = ""
    error: str = ""
    error_code: Optional[ErrorCode] = None
    ca_error: str = ""
    attempts: int = 0

    def raise_for_error(self) -> None:
        """Re-raise a failed result as the matching exception."""
        if self.success:
            return
        if self.error_code == ErrorCode.ACME_PROTOCOL_ERROR:
            raise AcmeProtocolError(self.error, ca_error=self.ca_error)
        if self.error_code == ErrorCode.TIMEOUT_ERROR:
            raise AcmeTimeoutError(self.error, attempts=self.attempts)
        if self.error_code == ErrorCode.OPERATION_CANCELLED:
            raise OperationCancelledError(self.error)
        if self.error_code == ErrorCode.CONFIGURATION_ERROR:
            raise ConfigurationError(self.error)
        raise CertificateError(self.error, code=self.error_code)


def build_csr(domain: str, private_key) -> bytes:
    """PEM-encoded PKCS#10 request for ``domain``, signed with SHA-256."""
    builder = x509.CertificateSigningRequestBuilder()
    if len(domain) <= MAX_COMMON_NAME_LENGTH:
        builder = builder.subject_name(x509.Name([
            x509.NameAttribute(NameOID.COMMON_NAME, domain),
        ]))
    else:
        builder = builder.subject_name(x509.Name([]))
    builder = builder.add_extension(
        x509.SubjectAlternativeName([x509.DNSName(domain)]), critical=False,
    )
    csr = builder.sign(private_key, hashes.SHA256())
    return csr.public_bytes(serialization.Encoding.PEM)


class AcmeOrderService:
    """Drive a single-domain order from creation to certificate download.

    The calling thread blocks for the whole exchange. Pass a ``Deadline`` to
    bound it or to cancel it from another thread.
    """

    def __init__(
        self,
        account_service: AcmeAccountService,
        challenge_registry: Optional[ChallengeHandlerRegistry] = None,
        config: Optional[AcmeConfig] = None,
    ):
        self.account_service = account_service
        self.challenge_registry = challenge_registry or ChallengeHandlerRegistry()
        self.config = config or account_service.config

    def issue_certificate(
        self,
        domain: str,
        challenge_type: Union[ChallengeType, str, None] = None,
        deadline: Optional[Deadline] = None,
    ) -> OrderResult:
        """Issue a certificate for ``domain`` with a brand-new key pair.

        CA rejections, timeouts and configuration problems come back as a
        failed OrderResult; call ``raise_for_error()`` to turn them into
        exceptions.
        """
        deadline = deadline or Deadline.none()
        if challenge_type is None:
            challenge_type = self.config.default_challenge
        logger.info("Starting certificate issuance for domain: %s", domain)
        state = OrderState.CREATED

        try:
            handler = self.challenge_registry.get(challenge_type)

            account = self.account_service.get_or_create_default_account()
            client = self.account_service.get_acme_account(account)

            domain_key = generate_key_pair("RSA", self.config.domain_key_size)
            csr_pem = build_csr(domain, domain_key)

            orderr = client.new_order(csr_pem)
            logger.info("Order created for %s with %d authorization(s)",
                        domain, len(orderr.authorizations))

            state = OrderState.AUTHORIZING
            for authzr in orderr.authorizations:
                self._authorize(client, authzr, handler, deadline)

            state = OrderState.CSR_SUBMITTED
            orderr = client.begin_finalization(orderr)

            state = OrderState.PENDING_FINALIZE
            orderr, attempts = self._finalize(client, orderr, deadline)

            certificate_pem, chain_pem = split_fullchain(orderr.fullchain_pem)
        except AcmeTimeoutError as e:
            return self._failed(domain, OrderState.TIMEOUT, e, attempts=e.attempts)
        except AutoCertError as e:
            return self._failed(domain, OrderState.INVALID, e, ca_error=getattr(e, "ca_error", ""))
        except acme_errors.Error as e:
            ca_error = str(e) if isinstance(e, messages.Error) else ""
            logger.error("ACME error for %s: %s", domain, e)
            return OrderResult(
                success=False, domain=domain, state=OrderState.INVALID,
                error=f"ACME error: {e}", error_code=ErrorCode.ACME_PROTOCOL_ERROR,
                ca_error=ca_error, message=f"Issuance failed for {domain}",
            )
        except requests.RequestException as e:
            logger.error("Could not reach the ACME server for %s: %s", domain, e)
            return OrderResult(
                success=False, domain=domain, state=state,
                error=f"ACME server unreachable: {e}", error_code=ErrorCode.CONNECTION_ERROR,
                message=f"Issuance failed for {domain}",
            )

        logger.info("Certificate issued successfully for domain: %s", domain)
        return OrderResult(
            success=True,
            domain=domain,
            certificate_pem=certificate_pem,
            private_key_pem=private_key_pem(domain_key),
            chain_pem=chain_pem,
            state=OrderState.VALID,
            attempts=attempts,
            message=f"Certificate issued for {domain}",
        )

    def _authorize(self, client, authzr, handler: ChallengeHandler, deadline: Deadline) -> None:
        """Run prepare, validate and cleanup for one authorization."""
        identifier = authzr.body.identifier.value
        if authzr.body.status == messages.STATUS_VALID:
            logger.info("Authorization for %s is already valid", identifier)
            return

        logger.info("Processing authorization for: %s", identifier)
        challb = self._select_challenge(authzr, handler.challenge_type)
        challenge = AcmeChallenge(client, authzr, challb)

        try:
            handler.prepare(identifier, challenge, deadline)
            outcome = handler.validate(challenge, deadline)
        finally:
            self._cleanup(handler, identifier, challenge)

        if outcome.success:
            logger.info("Authorization completed for: %s", identifier)
            return
        if outcome.timed_out:
            raise AcmeTimeoutError(
                f"Challenge validation timed out for {identifier}", attempts=outcome.attempts,
            )
        raise AcmeProtocolError(
            f"Challenge validation failed for {identifier}: {outcome.error}",
            ca_error=outcome.error,
        )

    @staticmethod
    def _select_challenge(authzr, challenge_type: ChallengeType):
        for challb in authzr.body.challenges:
            if challb.chall.typ == challenge_type.value:
                return challb
        raise AcmeProtocolError(
            f"{challenge_type.value} challenge not offered for {authzr.body.identifier.value}"
        )

    @staticmethod
    def _cleanup(handler: ChallengeHandler, domain: str, challenge: AcmeChallenge) -> None:
        try:
            handler.cleanup(domain, challenge)
        except Exception:
            logger.exception("Challenge cleanup failed for %s", domain)

    def _finalize(self, client, orderr, deadline: Deadline):
        """Poll the finalized order until the certificate is ready.

        Each attempt waits up to one poll interval inside the ``acme`` client.
        Returns the completed order and the number of attempts used.
        """
        max_attempts = self.config.max_order_attempts
        interval = max(self.config.poll_interval, 1)
        attempts = 0

        while attempts < max_attempts:
            deadline.check()
            if deadline.expired:
                break
            attempts += 1
            window = interval
            remaining = deadline.remaining()
            if remaining is not None:
                window = min(window, remaining)
            try:
                orderr = client.poll_finalization(orderr, datetime.now() + timedelta(seconds=window))
            except acme_errors.TimeoutError:
                logger.debug("Order not ready (attempt %d/%d)", attempts, max_attempts)
                continue
            except acme_errors.IssuanceError as e:
                raise AcmeProtocolError(f"Order failed: {e.error}", ca_error=str(e.error))
            if not orderr.fullchain_pem:
                raise CertificateError("Order completed without a certificate")
            logger.info("Order is valid after %d attempt(s)", attempts)
            return orderr, attempts

        raise AcmeTimeoutError(
            f"Order finalization timed out after {attempts} attempt(s)", attempts=attempts,
        )

    @staticmethod
    def _failed(domain: str, state: OrderState, error: AutoCertError,
                ca_error: str = "", attempts: int = 0) -> OrderResult:
        logger.error("Certificate issuance failed for domain %s: %s", domain, error)
        return OrderResult(
            success=False,
            domain=domain,
            state=state,
            error=error.message,
            error_code=error.code,
            ca_error=ca_error,
            attempts=attempts,
            message=f"Issuance failed for {domain}",
        )
