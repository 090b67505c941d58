"""Manual DNS provider: the operator creates the TXT record by hand."""

import logging
from typing import Callable, Optional

from autocert.dns.base import DnsProvider
from autocert.utils.helpers import Deadline

logger = logging.getLogger(__name__)

BANNER = "=" * 80


class ManualDnsProvider(DnsProvider):
    """Print the record to create and wait for operator confirmation.

    Meant for environments without DNS API access. With ``auto_confirm`` the
    provider does not block on stdin.
    """

    name = "manual"
    confirm_wait = 10

    def __init__(
        self,
        auto_confirm: Optional[bool] = None,
        input_func: Callable[[str], str] = input,
    ):
        if auto_confirm is None:
            from config.settings import ACME_AUTO_CONFIRM
            auto_confirm = ACME_AUTO_CONFIRM
        self.auto_confirm = auto_confirm
        self._input = input_func

    def add_txt_record(self, domain: str, record_name: str, value: str) -> bool:
        logger.info(BANNER)
        logger.info("MANUAL DNS CHALLENGE - TXT record required")
        logger.info(BANNER)
        logger.info("Domain:      %s", domain)
        logger.info("Record name: %s.%s", record_name, domain)
        logger.info("Record type: TXT")
        logger.info("Value:       %s", value)
        logger.info(BANNER)
        self._wait_for_confirmation()
        return True

    def remove_txt_record(self, domain: str, record_name: str, value: str) -> None:
        logger.info("Remove the DNS TXT record: %s.%s = %s", record_name, domain, value)

    def wait_for_propagation(
        self,
        domain: str,
        record_name: str,
        value: str,
        timeout: int,
        deadline: Optional[Deadline] = None,
    ) -> bool:
        # The operator confirmed the record exists; only a short settle time.
        logger.info("Waiting %d seconds for DNS propagation", self.confirm_wait)
        deadline = deadline or Deadline.none()
        deadline.sleep(self.confirm_wait)
        if deadline.cancelled:
            return False
        logger.info("Assuming DNS propagation is complete")
        return True

    def _wait_for_confirmation(self) -> None:
        if self.auto_confirm:
            logger.info("ACME_AUTO_CONFIRM set, continuing without confirmation")
            return
        try:
            self._input("Press Enter once the TXT record has been created... ")
        except EOFError:
            logger.warning("No interactive input available, continuing")
