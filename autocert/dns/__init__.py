"""DNS providers for ACME DNS-01 challenges."""

from autocert.dns.base import ACME_CHALLENGE_PREFIX, DnsProvider, extract_zone_name
from autocert.dns.manual import ManualDnsProvider
from autocert.dns.registry import DnsProviderRegistry

__all__ = [
    "ACME_CHALLENGE_PREFIX", "DnsProvider", "DnsProviderRegistry",
    "ManualDnsProvider", "extract_zone_name",
]
