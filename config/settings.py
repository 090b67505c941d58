"""Project-wide settings and defaults."""

import os
from pathlib import Path

# Base paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.environ.get("AUTOCERT_DATA_DIR", str(PROJECT_ROOT / "data")))

# ACME
ACME_STAGING_URL = "https://acme-staging-v02.api.letsencrypt.org/directory"
ACME_PRODUCTION_URL = "https://acme-v02.api.letsencrypt.org/directory"
ACME_DIRECTORY_URL = os.environ.get("ACME_DIRECTORY_URL", ACME_STAGING_URL)
ACME_EMAIL = os.environ.get("ACME_EMAIL", "")
ACME_KEY_ALGORITHM = os.environ.get("ACME_KEY_ALGORITHM", "RSA").upper()
ACME_KEY_SIZE = int(os.environ.get("ACME_KEY_SIZE", "2048"))
ACME_DEFAULT_CHALLENGE = os.environ.get("ACME_DEFAULT_CHALLENGE", "dns-01")
ACME_ORDER_TIMEOUT = int(os.environ.get("ACME_ORDER_TIMEOUT", "300"))
ACME_POLL_INTERVAL = int(os.environ.get("ACME_POLL_INTERVAL", "5"))
ACME_CHALLENGE_POLL_INTERVAL = int(os.environ.get("ACME_CHALLENGE_POLL_INTERVAL", "3"))
ACME_HTTP_WEBROOT = os.environ.get("ACME_HTTP_WEBROOT", "/var/www/html")
ACME_AUTO_CONFIRM = os.environ.get("ACME_AUTO_CONFIRM", "false").lower() == "true"
DOMAIN_KEY_SIZE = 2048

# DNS-01
DNS_PROVIDER = os.environ.get("DNS_PROVIDER", "")
DNS_PROPAGATION_TIMEOUT = int(os.environ.get("DNS_PROPAGATION_TIMEOUT", "300"))
DNS_RESOLVER = os.environ.get("DNS_RESOLVER", "8.8.8.8")
CLOUDFLARE_API_TOKEN = os.environ.get("CLOUDFLARE_API_TOKEN", "")

# Azure DNS integration
AZURE_SUBSCRIPTION_ID = os.environ.get("AZURE_SUBSCRIPTION_ID", "")
AZURE_RESOURCE_GROUP = os.environ.get("AZURE_RESOURCE_GROUP", "")
AZURE_TENANT_ID = os.environ.get("AZURE_TENANT_ID", "")
AZURE_CLIENT_ID = os.environ.get("AZURE_CLIENT_ID", "")
AZURE_CLIENT_SECRET = os.environ.get("AZURE_CLIENT_SECRET", "")

# Distribution (SSH/SFTP)
SSH_TIMEOUT_MS = int(os.environ.get("SSH_TIMEOUT_MS", "30000"))
SSH_MAX_RETRIES = int(os.environ.get("SSH_MAX_RETRIES", "3"))
SSH_RETRY_DELAY_MS = int(os.environ.get("SSH_RETRY_DELAY_MS", "1000"))
SSH_DEFAULT_PORT = int(os.environ.get("SSH_DEFAULT_PORT", "22"))
DEPLOY_CERT_PATH = os.environ.get("DEPLOY_CERT_PATH", "/etc/ssl/certs")
DEPLOY_KEY_PATH = os.environ.get("DEPLOY_KEY_PATH", "/etc/ssl/private")

# Private key encryption at rest
ENCRYPTION_KEY = os.environ.get("AUTOCERT_ENCRYPTION_KEY", "")
DEV_MODE = os.environ.get("AUTOCERT_DEV_MODE", "false").lower() == "true"

# Certificate defaults
DEFAULT_ALERT_DAYS = 7
CERT_EXPIRY_WARNING_DAYS = 30

# Scheduler
SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "true").lower() == "true"
RENEWAL_CHECK_INTERVAL_HOURS = int(os.environ.get("RENEWAL_CHECK_INTERVAL_HOURS", "12"))
RENEWAL_THRESHOLD_DAYS = int(os.environ.get("RENEWAL_THRESHOLD_DAYS", "30"))
EXPIRY_ALERT_DAYS = int(os.environ.get("EXPIRY_ALERT_DAYS", "7"))

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
