"""Cloudflare DNS provider for ACME DNS-01 challenges."""

import logging
from typing import Optional

import requests

from autocert.dns.base import DnsProvider, PublicResolverPropagationMixin, extract_zone_name
from autocert.errors import ConfigurationError

logger = logging.getLogger(__name__)

CLOUDFLARE_API_URL = "https://api.cloudflare.com/client/v4"
RECORD_TTL = 120


class CloudflareApiError(Exception):
    """The Cloudflare API rejected a request or returned no usable result."""


class CloudflareDnsProvider(PublicResolverPropagationMixin, DnsProvider):
    """Manage ``_acme-challenge`` TXT records through the Cloudflare v4 API.

    Requires an API token with Zone.DNS edit permission.
    """

    name = "cloudflare"
    initial_delay = 20
    check_interval = 10

    def __init__(
        self,
        api_token: str,
        api_url: str = CLOUDFLARE_API_URL,
        resolver_address: Optional[str] = None,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        if not api_token:
            raise ConfigurationError(
                "Cloudflare credentials not configured. Set CLOUDFLARE_API_TOKEN."
            )
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        if resolver_address:
            self.resolver_address = resolver_address
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        })

    def add_txt_record(self, domain: str, record_name: str, value: str) -> bool:
        """Create the TXT record. Returns True on success, False on failure."""
        full_name = f"{record_name}.{domain}"
        logger.info("Adding DNS TXT record to Cloudflare: %s = %s", full_name, value)
        try:
            zone_id = self.get_zone_id(domain)
            self._request(
                "POST", f"/zones/{zone_id}/dns_records",
                json={"type": "TXT", "name": full_name, "content": value, "ttl": RECORD_TTL},
            )
        except (requests.RequestException, CloudflareApiError) as e:
            logger.error("Failed to add DNS TXT record %s to Cloudflare: %s", full_name, e)
            return False
        logger.info("DNS TXT record added successfully to Cloudflare")
        return True

    def remove_txt_record(self, domain: str, record_name: str, value: str) -> None:
        """Delete the TXT record. Failures are logged and never raised."""
        full_name = f"{record_name}.{domain}"
        logger.info("Removing DNS TXT record from Cloudflare: %s", full_name)
        try:
            zone_id = self.get_zone_id(domain)
            record_id = self.find_record_id(zone_id, full_name, value)
            if not record_id:
                logger.warning("DNS TXT record not found for removal: %s", full_name)
                return
            self._request("DELETE", f"/zones/{zone_id}/dns_records/{record_id}")
            logger.info("DNS TXT record removed successfully from Cloudflare")
        except Exception as e:
            logger.warning("Failed to remove DNS TXT record (non-critical): %s", e)

    def get_zone_id(self, domain: str) -> str:
        zone_name = extract_zone_name(domain)
        result = self._request("GET", "/zones", params={"name": zone_name})
        if not result:
            raise CloudflareApiError(f"Zone not found for domain: {zone_name}")
        return result[0]["id"]

    def find_record_id(self, zone_id: str, full_name: str, value: str) -> Optional[str]:
        records = self._request(
            "GET", f"/zones/{zone_id}/dns_records",
            params={"type": "TXT", "name": full_name},
        )
        for record in records or []:
            if record.get("content") == value:
                return record.get("id")
        return None

    def _request(self, method: str, path: str, **kwargs):
        """Call the API and return the ``result`` member of a successful reply."""
        response = self.session.request(
            method, f"{self.api_url}{path}", timeout=self.timeout, **kwargs,
        )
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not response.ok or not body.get("success", False):
            errors = body.get("errors") or response.text
            raise CloudflareApiError(
                f"{method} {path} failed with HTTP {response.status_code}: {errors}"
            )
        return body.get("result")
