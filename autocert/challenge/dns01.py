"""DNS-01 challenge handler: publish the digest as a TXT record."""

import logging
from typing import Optional

from autocert.challenge.base import AcmeChallenge, ChallengeHandler
from autocert.dns.base import ACME_CHALLENGE_PREFIX, DnsProvider
from autocert.dns.registry import DnsProviderRegistry
from autocert.errors import CertificateError
from autocert.models import ChallengeType
from autocert.utils.helpers import Deadline

logger = logging.getLogger(__name__)


class Dns01ChallengeHandler(ChallengeHandler):
    """Place ``_acme-challenge.<domain>`` through the configured DNS provider.

    Polling allows 100 attempts (about five minutes at 3s) since the CA may
    retry lookups while resolvers catch up.
    """

    challenge_type = ChallengeType.DNS_01
    max_attempts = 100

    def __init__(
        self,
        dns_registry: Optional[DnsProviderRegistry] = None,
        propagation_timeout: Optional[int] = None,
        poll_interval: Optional[int] = None,
    ):
        from config import settings

        self.dns_registry = dns_registry or DnsProviderRegistry()
        self.propagation_timeout = (
            settings.DNS_PROPAGATION_TIMEOUT if propagation_timeout is None else propagation_timeout
        )
        self.poll_interval = (
            settings.ACME_CHALLENGE_POLL_INTERVAL if poll_interval is None else poll_interval
        )

    @property
    def provider(self) -> DnsProvider:
        return self.dns_registry.get()

    def prepare(self, domain: str, challenge: AcmeChallenge, deadline: Optional[Deadline] = None) -> None:
        digest = challenge.validation()
        logger.info("Preparing DNS-01 challenge for domain: %s", domain)
        logger.debug("Digest: %s", digest)

        provider = self.provider
        if not provider.add_txt_record(domain, ACME_CHALLENGE_PREFIX, digest):
            raise CertificateError(
                f"Failed to add DNS TXT record {ACME_CHALLENGE_PREFIX}.{domain} "
                f"via {provider.provider_name()}"
            )
        logger.info("DNS TXT record added: %s.%s = %s", ACME_CHALLENGE_PREFIX, domain, digest)

        propagated = provider.wait_for_propagation(
            domain, ACME_CHALLENGE_PREFIX, digest, self.propagation_timeout, deadline,
        )
        if propagated:
            logger.info("DNS propagation completed")
        else:
            logger.warning("DNS propagation timeout, continuing with validation")

    def cleanup(self, domain: str, challenge: AcmeChallenge) -> None:
        try:
            self.provider.remove_txt_record(domain, ACME_CHALLENGE_PREFIX, challenge.validation())
            logger.info("DNS TXT record removed: %s.%s", ACME_CHALLENGE_PREFIX, domain)
        except Exception as e:
            logger.warning("Failed to remove DNS TXT record for domain %s: %s", domain, e)
