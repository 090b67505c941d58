"""Push certificate material to servers and keep the deployment history."""

import logging
import posixpath
import time
from datetime import datetime
from typing import Callable, Optional

from autocert.distribution.config import DistributionConfig
from autocert.distribution.ssh import SshClient
from autocert.errors import DistributionError, ResourceNotFoundError
from autocert.models import Certificate, Deployment, DeploymentStatus, Server, WebServerType
from autocert.store import DeploymentStore, ServerStore

logger = logging.getLogger(__name__)


class CertificateDistributionService:
    """Deploy a certificate to its server over SSH/SFTP.

    Every attempt is recorded: the Deployment is stored IN_PROGRESS before
    any network I/O and ends up SUCCESS or FAILED.
    """

    def __init__(
        self,
        server_store: ServerStore,
        deployment_store: DeploymentStore,
        config: Optional[DistributionConfig] = None,
        ssh_factory: Callable = SshClient,
    ):
        self.server_store = server_store
        self.deployment_store = deployment_store
        self.config = config or DistributionConfig.from_settings()
        self.ssh_factory = ssh_factory

    def deploy(self, certificate: Certificate, private_key_pem: str) -> bool:
        """Upload certificate, key and chain, then reload nginx if applicable.

        Returns False when the deployment failed; the reason is stored on the
        Deployment record.
        """
        if not certificate.server_id:
            logger.error("Certificate %s has no associated server", certificate.certificate_id)
            raise DistributionError(f"No server registered for certificate {certificate.domain}")
        server = self.server_store.get(certificate.server_id)
        if not server:
            raise ResourceNotFoundError(f"Server not found: {certificate.server_id}")

        logger.info("Starting deployment of certificate %s to server %s (%s:%d)",
                    certificate.certificate_id, server.name, server.ip_address, server.port)
        cert_dir, key_dir = self.resolve_paths(server)
        deployment = self.deployment_store.append(Deployment(
            certificate_id=certificate.certificate_id,
            server_id=server.server_id,
            status=DeploymentStatus.IN_PROGRESS,
            deploy_path=cert_dir,
        ))

        started = time.monotonic()
        ssh = None
        uploaded: list[str] = []
        try:
            ssh = self.ssh_factory(
                server.ip_address,
                server.port or self.config.default_port,
                server.username,
                server.password,
                self.config,
            )
            ssh.connect()

            for remote_path, content in self.deployment_files(certificate, private_key_pem, cert_dir, key_dir):
                ssh.upload_file(content, remote_path)
                uploaded.append(remote_path)

            self._finish(deployment, DeploymentStatus.SUCCESS,
                         "Successfully deployed certificate files", started)
            logger.info("Certificate %s deployed successfully to server %s in %dms",
                        certificate.domain, server.name, deployment.duration_ms)

            if server.web_server_type == WebServerType.NGINX:
                self.reload_nginx(ssh, server)
            return True
        except Exception as e:
            logger.error("Failed to deploy certificate %s to server %s: %s",
                         certificate.domain, server.name, e)
            if ssh is not None and uploaded:
                self._remove_partial(ssh, uploaded)
            self._finish(deployment, DeploymentStatus.FAILED, f"Deployment failed: {e}", started)
            return False
        finally:
            if ssh is not None:
                ssh.close()

    def reload_nginx(self, ssh: SshClient, server: Server) -> bool:
        """Test the nginx config, then reload. Failures are logged only."""
        logger.info("Starting Nginx reload for server %s", server.name)
        try:
            test = ssh.execute_sudo("nginx -t")
            if not test.success:
                logger.error("Nginx configuration test failed on %s: %s", server.name, test.stderr)
                logger.warning("Certificate files are deployed, but Nginx reload failed. Manual reload required.")
                return False
            reload = ssh.execute_sudo("nginx -s reload")
            if not reload.success:
                logger.error("Failed to reload Nginx on server %s: %s", server.name, reload.stderr)
                logger.warning("Certificate files are deployed, but Nginx reload failed. Manual reload required.")
                return False
        except Exception as e:
            logger.error("Failed to reload Nginx on server %s: %s", server.name, e)
            logger.warning("Certificate files are deployed, but Nginx reload failed. Manual reload required.")
            return False
        logger.info("Nginx reloaded successfully on %s", server.name)
        return True

    def is_ready_for_deployment(self, certificate: Optional[Certificate]) -> bool:
        if certificate is None:
            logger.warning("Certificate is null")
            return False
        if not certificate.server_id:
            logger.warning("Certificate %s has no associated server", certificate.certificate_id)
            return False
        if not certificate.certificate_pem:
            logger.warning("Certificate %s has no certificate PEM", certificate.certificate_id)
            return False
        if not certificate.private_key_pem:
            logger.warning("Certificate %s has no private key PEM", certificate.certificate_id)
            return False
        server = self.server_store.get(certificate.server_id)
        if not server:
            logger.warning("Server %s not found", certificate.server_id)
            return False
        if not server.ip_address:
            logger.warning("Server %s has no IP address", server.server_id)
            return False
        if not server.username:
            logger.warning("Server %s has no username", server.server_id)
            return False
        if not server.password:
            logger.warning("Server %s has no password", server.server_id)
            return False
        logger.debug("Certificate %s is ready for deployment", certificate.certificate_id)
        return True

    def history(
        self,
        certificate_id: Optional[str] = None,
        server_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Deployment]:
        """Deployments, oldest first, narrowed by any of the given filters."""
        def keep(d: Deployment) -> bool:
            if certificate_id and d.certificate_id != certificate_id:
                return False
            if server_id and d.server_id != server_id:
                return False
            if start and d.deployed_at < start:
                return False
            if end and d.deployed_at > end:
                return False
            return True

        return self.deployment_store.filter(keep)

    def resolve_paths(self, server: Server) -> tuple[str, str]:
        """(certificate dir, key dir): the server's deploy path or the defaults."""
        if server.deploy_path:
            return server.deploy_path, server.deploy_path
        return self.config.cert_path, self.config.key_path

    @staticmethod
    def deployment_files(certificate: Certificate, private_key_pem: str,
                         cert_dir: str, key_dir: str) -> list[tuple[str, str]]:
        """Remote path and content of each file to upload, in upload order."""
        name = certificate.domain.replace("*", "_wildcard")
        files = [
            (posixpath.join(cert_dir, f"{name}.crt"), certificate.certificate_pem),
            (posixpath.join(key_dir, f"{name}.key"), private_key_pem),
        ]
        if certificate.chain_pem:
            files.append((posixpath.join(cert_dir, f"{name}-chain.crt"), certificate.chain_pem))
        return files

    def _finish(self, deployment: Deployment, status: DeploymentStatus, message: str, started: float) -> None:
        deployment.status = status
        deployment.message = message
        deployment.duration_ms = int((time.monotonic() - started) * 1000)
        self.deployment_store.save(deployment)

    @staticmethod
    def _remove_partial(ssh: SshClient, uploaded: list[str]) -> None:
        for remote_path in uploaded:
            try:
                ssh.remove_file(remote_path)
                logger.info("Removed partially deployed file: %s", remote_path)
            except Exception as e:
                logger.warning("Could not remove partially deployed file %s: %s", remote_path, e)
