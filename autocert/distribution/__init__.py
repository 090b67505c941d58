"""Certificate distribution over SSH/SFTP."""

from autocert.distribution.config import DistributionConfig
from autocert.distribution.service import CertificateDistributionService
from autocert.distribution.ssh import CommandResult, SshClient

__all__ = ["CertificateDistributionService", "CommandResult", "DistributionConfig", "SshClient"]
