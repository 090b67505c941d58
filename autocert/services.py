"""Wire stores and services together from settings."""

from dataclasses import dataclass
from typing import Optional

from autocert.acme_account import AcmeAccountService, AcmeConfig
from autocert.acme_order import AcmeOrderService
from autocert.challenge.registry import ChallengeHandlerRegistry
from autocert.distribution.service import CertificateDistributionService
from autocert.encryption import get_default_encryption
from autocert.lifecycle import CertificateService
from autocert.servers import ServerService
from autocert.store import open_stores
from autocert.validation.service import CertificateValidationService


@dataclass
class Services:
    stores: dict
    accounts: AcmeAccountService
    orders: AcmeOrderService
    servers: ServerService
    distribution: CertificateDistributionService
    certificates: CertificateService
    validation: CertificateValidationService


def build_services(data_dir: Optional[str] = None) -> Services:
    """Build every service over JSON stores in ``data_dir`` (settings default)."""
    from config.settings import DATA_DIR

    stores = open_stores(str(data_dir or DATA_DIR))
    config = AcmeConfig.from_settings()
    accounts = AcmeAccountService(stores["accounts"], config)
    orders = AcmeOrderService(accounts, ChallengeHandlerRegistry(), config)
    distribution = CertificateDistributionService(stores["servers"], stores["deployments"])
    certificates = CertificateService(
        stores["certificates"],
        orders,
        server_store=stores["servers"],
        encryption=get_default_encryption(),
        distribution_service=distribution,
    )
    return Services(
        stores=stores,
        accounts=accounts,
        orders=orders,
        servers=ServerService(stores["servers"]),
        distribution=distribution,
        certificates=certificates,
        validation=CertificateValidationService(stores["certificates"]),
    )
