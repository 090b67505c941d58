"""ACME account bootstrap and session re-establishment."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import josepy as jose
from acme import client as acme_client
from acme import errors as acme_errors
from acme import messages
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from autocert.errors import CertificateError, ConfigurationError, ResourceNotFoundError
from autocert.models import AccountStatus, AcmeAccount, ChallengeType
from autocert.store import AcmeAccountStore
from autocert.utils.helpers import private_key_pem, public_key_pem

logger = logging.getLogger(__name__)

USER_AGENT = "autocert"

EC_SIGNING_ALGORITHMS = {
    256: jose.ES256,
    384: jose.ES384,
    521: jose.ES512,
}


@dataclass
class AcmeConfig:
    """Settings that drive ACME account and order handling."""

    directory_url: str
    email: str = ""
    key_algorithm: str = "RSA"
    key_size: int = 2048
    default_challenge: ChallengeType = ChallengeType.DNS_01
    order_timeout: int = 300
    poll_interval: int = 5
    domain_key_size: int = 2048

    @classmethod
    def from_settings(cls) -> "AcmeConfig":
        from config import settings

        return cls(
            directory_url=settings.ACME_DIRECTORY_URL,
            email=settings.ACME_EMAIL,
            key_algorithm=settings.ACME_KEY_ALGORITHM,
            key_size=settings.ACME_KEY_SIZE,
            default_challenge=ChallengeType.from_value(settings.ACME_DEFAULT_CHALLENGE),
            order_timeout=settings.ACME_ORDER_TIMEOUT,
            poll_interval=settings.ACME_POLL_INTERVAL,
            domain_key_size=settings.DOMAIN_KEY_SIZE,
        )

    @property
    def max_order_attempts(self) -> int:
        return max(1, self.order_timeout // max(self.poll_interval, 1))


def generate_key_pair(algorithm: str, key_size: int):
    """Generate an RSA key, or an ECDSA key on curve ``secp<size>r1``."""
    algorithm = (algorithm or "").upper()
    logger.debug("Generating key pair: algorithm=%s, size=%d", algorithm, key_size)
    if algorithm == "RSA":
        return rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    if algorithm in ("ECDSA", "EC"):
        curve_cls = getattr(ec, f"SECP{key_size}R1", None)
        if curve_cls is None:
            raise ConfigurationError(f"Unsupported ECDSA curve: secp{key_size}r1")
        return ec.generate_private_key(curve_cls())
    raise ConfigurationError(f"Unsupported key algorithm: {algorithm}")


def load_account_key(pem: str):
    return serialization.load_pem_private_key(pem.encode("ascii"), password=None)


def jwk_for(private_key) -> tuple:
    """Return (JWK, signing algorithm) for an RSA or EC private key."""
    if isinstance(private_key, rsa.RSAPrivateKey):
        return jose.JWKRSA(key=private_key), jose.RS256
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        alg = EC_SIGNING_ALGORITHMS.get(private_key.curve.key_size)
        if alg is None:
            raise ConfigurationError(f"Unsupported EC curve: {private_key.curve.name}")
        return jose.JWKEC(key=private_key), alg
    raise ConfigurationError(f"Unsupported account key type: {type(private_key).__name__}")


class AcmeAccountService:
    """Look up, register and reconnect ACME accounts.

    One account exists per (email, directory URL). It is created lazily the
    first time a certificate is issued against that CA and reused after.
    """

    def __init__(self, store: AcmeAccountStore, config: Optional[AcmeConfig] = None):
        self.store = store
        self.config = config or AcmeConfig.from_settings()

    def get_or_create_default_account(self) -> AcmeAccount:
        """Return the ACTIVE account for the configured email and directory."""
        logger.debug("Getting or creating default ACME account")
        existing = self.store.find_by_email_and_server(self.config.email, self.config.directory_url)
        if existing:
            existing.last_used_at = datetime.now(timezone.utc)
            logger.info("Using existing ACME account: %s", existing.email)
            return self.store.save(existing)
        return self.create_account(self.config.email, self.config.directory_url)

    def create_account(self, email: str, server_url: str) -> AcmeAccount:
        """Generate a key pair, register it with the CA and persist the account."""
        logger.info("Creating new ACME account for email: %s, server: %s", email, server_url)
        private_key = generate_key_pair(self.config.key_algorithm, self.config.key_size)

        try:
            client = self._build_client(private_key, server_url)
            registration = messages.NewRegistration.from_data(
                email=email or None, terms_of_service_agreed=True,
            )
            regr = client.new_account(registration)
        except (acme_errors.Error, messages.Error) as e:
            logger.error("Failed to create ACME account for email %s: %s", email, e)
            raise CertificateError(f"ACME account creation failed: {e}")

        logger.info("ACME account created successfully. Account URL: %s", regr.uri)
        account = AcmeAccount(
            email=email,
            server_url=server_url,
            account_url=regr.uri,
            private_key_pem=private_key_pem(private_key),
            public_key_pem=public_key_pem(private_key),
            status=AccountStatus.ACTIVE,
            key_algorithm=self.config.key_algorithm.upper(),
            key_size=self.config.key_size,
            terms_agreed=True,
            last_used_at=datetime.now(timezone.utc),
        )
        saved = self.store.save(account)
        logger.info("ACME account saved with id: %s", saved.account_id)
        return saved

    def get_acme_account(self, account: AcmeAccount):
        """Rebuild a CA session for a stored account.

        Only an existing registration is accepted: if the CA no longer knows
        the key, this raises CertificateError instead of registering anew.

        Returns:
            An ``acme.client.ClientV2`` bound to the account.
        """
        logger.debug("Creating ACME session for account: %s", account.email)
        if not account.is_active:
            raise CertificateError(f"ACME account {account.account_id} is deactivated")
        try:
            private_key = load_account_key(account.private_key_pem)
            client = self._build_client(private_key, account.server_url)
            if account.account_url:
                regr = messages.RegistrationResource(
                    uri=account.account_url, body=messages.Registration(),
                )
                client.net.account = regr
                regr = client.query_registration(regr)
            else:
                regr = self._lookup_existing(client)
            client.net.account = regr
        except (acme_errors.Error, messages.Error, ValueError) as e:
            logger.error("Failed to create ACME session for account %s: %s", account.email, e)
            raise CertificateError(f"ACME session creation failed: {e}")

        logger.debug("ACME account session created successfully")
        return client

    def get(self, account_id: str) -> AcmeAccount:
        account = self.store.get(account_id)
        if not account:
            raise ResourceNotFoundError(f"ACME account not found: {account_id}")
        return account

    def list_active(self) -> list[AcmeAccount]:
        return self.store.active()

    def list_all(self) -> list[AcmeAccount]:
        return self.store.list_all()

    def deactivate(self, account_id: str, remote: bool = True) -> AcmeAccount:
        """Mark an account DEACTIVATED, also deactivating it at the CA if asked.

        A CA-side failure is logged; the local status still changes so the
        account is never handed out again.
        """
        logger.info("Deactivating ACME account: %s", account_id)
        account = self.get(account_id)
        if remote and account.is_active and account.account_url:
            try:
                client = self.get_acme_account(account)
                client.deactivate_registration(client.net.account)
            except Exception as e:
                logger.warning("CA-side deactivation of %s failed: %s", account_id, e)
        account.status = AccountStatus.DEACTIVATED
        self.store.save(account)
        logger.info("ACME account deactivated: %s", account_id)
        return account

    @staticmethod
    def _lookup_existing(client):
        registration = messages.NewRegistration(only_return_existing=True)
        try:
            return client.new_account(registration)
        except acme_errors.ConflictError as e:
            # The CA answers an existing-account lookup with the account URL.
            return messages.RegistrationResource(uri=e.location, body=messages.Registration())

    @staticmethod
    def _build_client(private_key, server_url: str):
        jwk, alg = jwk_for(private_key)
        net = acme_client.ClientNetwork(jwk, alg=alg, user_agent=USER_AGENT)
        directory = acme_client.ClientV2.get_directory(server_url, net)
        return acme_client.ClientV2(directory, net=net)
