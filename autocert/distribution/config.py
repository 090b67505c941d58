"""Distribution settings."""

from dataclasses import dataclass


@dataclass
class DistributionConfig:
    timeout_ms: int = 30000
    max_retries: int = 3
    retry_delay_ms: int = 1000
    default_port: int = 22
    cert_path: str = "/etc/ssl/certs"
    key_path: str = "/etc/ssl/private"

    @classmethod
    def from_settings(cls) -> "DistributionConfig":
        from config import settings

        return cls(
            timeout_ms=settings.SSH_TIMEOUT_MS,
            max_retries=settings.SSH_MAX_RETRIES,
            retry_delay_ms=settings.SSH_RETRY_DELAY_MS,
            default_port=settings.SSH_DEFAULT_PORT,
            cert_path=settings.DEPLOY_CERT_PATH,
            key_path=settings.DEPLOY_KEY_PATH,
        )
