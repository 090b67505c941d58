"""Select the DNS provider named in configuration."""

import logging
from typing import Callable, Optional

from autocert.dns.base import DnsProvider
from autocert.dns.manual import ManualDnsProvider

logger = logging.getLogger(__name__)


def _cloudflare_from_settings() -> DnsProvider:
    from config.settings import CLOUDFLARE_API_TOKEN, DNS_RESOLVER
    from autocert.dns.cloudflare import CloudflareDnsProvider
    return CloudflareDnsProvider(CLOUDFLARE_API_TOKEN, resolver_address=DNS_RESOLVER)


def _azure_from_settings() -> DnsProvider:
    from config import settings
    from autocert.dns.azure import AzureDnsProvider
    provider = AzureDnsProvider(
        subscription_id=settings.AZURE_SUBSCRIPTION_ID,
        resource_group=settings.AZURE_RESOURCE_GROUP,
        tenant_id=settings.AZURE_TENANT_ID,
        client_id=settings.AZURE_CLIENT_ID,
        client_secret=settings.AZURE_CLIENT_SECRET,
    )
    provider.resolver_address = settings.DNS_RESOLVER
    return provider


class DnsProviderRegistry:
    """Map provider names to factories and build the configured provider.

    An unset or unknown name falls back to the manual provider and logs a
    warning. A known provider that cannot be built (missing credentials)
    raises ConfigurationError from its constructor.
    """

    def __init__(self, provider_name: Optional[str] = None):
        if provider_name is None:
            from config.settings import DNS_PROVIDER
            provider_name = DNS_PROVIDER
        self.provider_name = (provider_name or "").strip().lower()
        self._factories: dict[str, Callable[[], DnsProvider]] = {
            "cloudflare": _cloudflare_from_settings,
            "azure": _azure_from_settings,
            "manual": ManualDnsProvider,
        }
        self._provider: Optional[DnsProvider] = None

    def register(self, name: str, factory: Callable[[], DnsProvider]) -> None:
        self._factories[name.lower()] = factory
        self._provider = None

    def names(self) -> list[str]:
        return sorted(self._factories)

    def get(self) -> DnsProvider:
        """Return the configured provider, building it on first use."""
        if self._provider is None:
            self._provider = self._build()
        return self._provider

    def _build(self) -> DnsProvider:
        name = self.provider_name
        if not name:
            logger.warning("DNS provider not configured, using manual provider as fallback")
            name = "manual"
        elif name not in self._factories:
            logger.warning("DNS provider '%s' not found, falling back to manual provider", name)
            name = "manual"

        provider = self._factories[name]()
        logger.info(
            "DNS provider loaded: %s (%s)", provider.provider_name(), type(provider).__name__,
        )
        return provider
