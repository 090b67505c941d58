"""ACME certificate lifecycle engine.

Issues certificates from an ACME CA, proves domain control with HTTP-01 or
DNS-01 challenges, validates the result and deploys it over SSH/SFTP.
"""

from autocert.errors import (
    AcmeProtocolError,
    AcmeTimeoutError,
    AutoCertError,
    CertificateError,
    ConfigurationError,
    DistributionError,
    DuplicateResourceError,
    ErrorCode,
    ResourceNotFoundError,
)
from autocert.models import (
    AcmeAccount,
    Certificate,
    CertificateStatus,
    ChallengeType,
    Deployment,
    DeploymentStatus,
    Server,
    WebServerType,
)

__all__ = [
    "AcmeAccount", "AcmeProtocolError", "AcmeTimeoutError", "AutoCertError",
    "Certificate", "CertificateError", "CertificateStatus", "ChallengeType",
    "ConfigurationError", "Deployment", "DeploymentStatus", "DistributionError",
    "DuplicateResourceError", "ErrorCode", "ResourceNotFoundError", "Server",
    "WebServerType",
]
