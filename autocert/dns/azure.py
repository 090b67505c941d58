"""Azure DNS provider for ACME DNS-01 challenges."""

import logging

from autocert.dns.base import DnsProvider, PublicResolverPropagationMixin
from autocert.errors import ConfigurationError

logger = logging.getLogger(__name__)


class AzureDnsProvider(PublicResolverPropagationMixin, DnsProvider):
    """Manage TXT records in Azure DNS zones of one subscription."""

    name = "azure"
    initial_delay = 20
    check_interval = 10

    def __init__(
        self,
        subscription_id: str = "",
        resource_group: str = "",
        tenant_id: str = "",
        client_id: str = "",
        client_secret: str = "",
        ttl: int = 60,
    ):
        if not subscription_id:
            raise ConfigurationError("Azure DNS provider requires AZURE_SUBSCRIPTION_ID")
        self.subscription_id = subscription_id
        self.resource_group = resource_group
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.ttl = ttl

    def _get_credential(self):
        """Return an Azure credential using service principal or default chain."""
        if self.tenant_id and self.client_id and self.client_secret:
            from azure.identity import ClientSecretCredential
            return ClientSecretCredential(
                tenant_id=self.tenant_id,
                client_id=self.client_id,
                client_secret=self.client_secret,
            )
        from azure.identity import DefaultAzureCredential
        return DefaultAzureCredential()

    def _client(self):
        from azure.mgmt.dns import DnsManagementClient
        return DnsManagementClient(self._get_credential(), self.subscription_id)

    def list_zones(self) -> list[dict]:
        """List DNS zones as dicts: {name, resource_group}."""
        client = self._client()
        zones = []
        if self.resource_group:
            for zone in client.zones.list_by_resource_group(self.resource_group):
                zones.append({"name": zone.name, "resource_group": self.resource_group})
        else:
            for zone in client.zones.list():
                zones.append({
                    "name": zone.name,
                    "resource_group": self._extract_resource_group(zone.id),
                })
        return zones

    def find_zone_for_domain(self, domain: str) -> tuple[str, str]:
        """Find the zone managing ``domain``.

        Returns (zone_name, resource_group) or ("", "") if not found.
        """
        zones = self.list_zones()
        # Longest name first so sub.example.com matches before example.com
        zones.sort(key=lambda z: len(z["name"]), reverse=True)
        domain_lower = domain.lower().rstrip(".")
        for zone in zones:
            zn = zone["name"].lower().rstrip(".")
            if domain_lower == zn or domain_lower.endswith("." + zn):
                return zone["name"], zone["resource_group"]
        return "", ""

    @staticmethod
    def relative_record_name(record_name: str, domain: str, zone_name: str) -> str:
        """``_acme-challenge`` plus whatever part of the domain is below the zone."""
        domain_lower = domain.lower().rstrip(".")
        zone_lower = zone_name.lower().rstrip(".")
        if domain_lower == zone_lower:
            return record_name
        prefix = domain_lower[: -(len(zone_lower) + 1)]
        return f"{record_name}.{prefix}"

    def add_txt_record(self, domain: str, record_name: str, value: str) -> bool:
        """Create or update the TXT record.

        Returns:
            True on success, False on failure.
        """
        try:
            from azure.mgmt.dns.models import RecordSet, TxtRecord

            zone_name, rg = self.find_zone_for_domain(domain)
            if not zone_name:
                logger.error("No Azure DNS zone found for %s", domain)
                return False
            relative = self.relative_record_name(record_name, domain, zone_name)
            self._client().record_sets.create_or_update(
                rg, zone_name, relative, "TXT",
                RecordSet(ttl=self.ttl, txt_records=[TxtRecord(value=[value])]),
            )
            logger.info("Created TXT record %s.%s = %s", relative, zone_name, value)
            return True
        except Exception as e:
            logger.error("Failed to create TXT record for %s: %s", domain, e)
            return False

    def remove_txt_record(self, domain: str, record_name: str, value: str) -> None:
        try:
            zone_name, rg = self.find_zone_for_domain(domain)
            if not zone_name:
                logger.warning("No Azure DNS zone found for %s, nothing to remove", domain)
                return
            relative = self.relative_record_name(record_name, domain, zone_name)
            self._client().record_sets.delete(rg, zone_name, relative, "TXT")
            logger.info("Deleted TXT record %s.%s", relative, zone_name)
        except Exception as e:
            logger.warning("Failed to delete TXT record for %s (non-critical): %s", domain, e)

    @staticmethod
    def _extract_resource_group(resource_id: str) -> str:
        """Extract resource group name from an Azure resource ID."""
        parts = resource_id.split("/")
        for i, part in enumerate(parts):
            if part.lower() == "resourcegroups" and i + 1 < len(parts):
                return parts[i + 1]
        return ""
