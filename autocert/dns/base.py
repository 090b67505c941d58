"""DNS provider interface for ACME DNS-01 TXT records."""

import logging
from typing import Optional

import dns.exception
import dns.resolver

from autocert.utils.helpers import Deadline

logger = logging.getLogger(__name__)

ACME_CHALLENGE_PREFIX = "_acme-challenge"
PUBLIC_RESOLVER = "8.8.8.8"


def extract_zone_name(domain: str) -> str:
    """Treat the last two labels as the zone (test.example.com -> example.com)."""
    parts = domain.rstrip(".").split(".")
    if len(parts) <= 2:
        return domain.rstrip(".")
    return ".".join(parts[-2:])


def query_txt_values(fqdn: str, nameserver: str = PUBLIC_RESOLVER, timeout: float = 5.0) -> list[str]:
    """Return the TXT values for ``fqdn`` as seen by ``nameserver``.

    Quotes around values are stripped. Lookup failures yield an empty list.
    """
    resolver = dns.resolver.Resolver(configure=False)
    resolver.nameservers = [nameserver]
    try:
        answer = resolver.resolve(fqdn, "TXT", lifetime=timeout)
    except dns.exception.DNSException as exc:
        logger.debug("TXT lookup for %s via %s failed: %s", fqdn, nameserver, exc)
        return []

    values = []
    for rdata in answer:
        value = b"".join(rdata.strings).decode("utf-8", errors="replace")
        values.append(value.strip('"'))
    return values


class DnsProvider:
    """Base class for TXT-record management behind DNS-01 challenges.

    Subclasses implement ``add_txt_record`` and ``remove_txt_record`` and
    may override ``wait_for_propagation``. ``remove_txt_record`` must never
    raise.
    """

    name = ""

    def provider_name(self) -> str:
        return self.name

    def add_txt_record(self, domain: str, record_name: str, value: str) -> bool:
        raise NotImplementedError

    def remove_txt_record(self, domain: str, record_name: str, value: str) -> None:
        raise NotImplementedError

    def wait_for_propagation(
        self,
        domain: str,
        record_name: str,
        value: str,
        timeout: int,
        deadline: Optional[Deadline] = None,
    ) -> bool:
        raise NotImplementedError


class PublicResolverPropagationMixin:
    """Propagation check that queries a public resolver directly.

    The provider accepting a record says nothing about whether the CA's
    resolvers can see it yet, so the check never asks the provider API.
    """

    initial_delay = 20
    check_interval = 10
    resolver_address = PUBLIC_RESOLVER

    def verify_record(self, fqdn: str, expected: str) -> bool:
        values = query_txt_values(fqdn, self.resolver_address)
        for found in values:
            logger.debug("Found DNS TXT record: %s = %s", fqdn, found)
            if found == expected:
                logger.info("DNS TXT record verified on public DNS: %s", fqdn)
                return True
        return False

    def wait_for_propagation(
        self,
        domain: str,
        record_name: str,
        value: str,
        timeout: int,
        deadline: Optional[Deadline] = None,
    ) -> bool:
        """Poll the public resolver until the value appears or time runs out.

        Returns False on timeout instead of raising, so the caller can decide
        whether to trigger validation anyway.
        """
        fqdn = f"{record_name}.{domain}"
        wait = Deadline(timeout)
        outer = deadline or Deadline.none()
        logger.info("Waiting for DNS propagation of %s (max %d seconds)", fqdn, timeout)

        logger.info("Initial delay for DNS propagation: %d seconds", self.initial_delay)
        if not self._sleep(self.initial_delay, wait, outer):
            return self._stopped(outer, 0)

        attempt = 0
        while True:
            attempt += 1
            if self.verify_record(fqdn, value):
                logger.info("DNS propagation verified after %d attempt(s)", attempt)
                return True
            logger.debug("DNS record not yet propagated (attempt %d)", attempt)
            if not self._sleep(self.check_interval, wait, outer):
                return self._stopped(outer, attempt)

    @staticmethod
    def _sleep(seconds: float, wait: Deadline, outer: Deadline) -> bool:
        remaining = wait.remaining()
        if remaining <= 0:
            return False
        keep_going = outer.sleep(min(seconds, remaining))
        outer.check()
        return keep_going and not wait.expired

    @staticmethod
    def _stopped(outer: Deadline, attempts: int) -> bool:
        outer.check()
        logger.warning("DNS propagation timeout after %d attempt(s)", attempts)
        return False
