"""SSH/SFTP session used to push certificate files to a server."""

import logging
import os
import posixpath
import tempfile
import time
from dataclasses import dataclass
from typing import Callable, Optional

import paramiko

from autocert.distribution.config import DistributionConfig
from autocert.errors import DistributionError, SshConnectionError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class SshClient:
    """Password-authenticated SSH connection with retrying connect.

    Usable as a context manager; ``close()`` is safe to call repeatedly.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        config: Optional[DistributionConfig] = None,
        client_factory: Callable = paramiko.SSHClient,
        sleep: Callable = time.sleep,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.config = config or DistributionConfig.from_settings()
        self._client_factory = client_factory
        self._sleep = sleep
        self._client = None
        self._sftp = None
        self.attempts = 0

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        """Connect, retrying with a linearly growing delay between attempts.

        Raises:
            SshConnectionError: every attempt failed. Carries the attempt
                count and chains the last underlying error.
        """
        max_retries = max(self.config.max_retries, 1)
        timeout = self.config.timeout_ms / 1000
        last_error = None

        for attempt in range(1, max_retries + 1):
            self.attempts = attempt
            logger.debug("SSH connection attempt %d/%d to %s", attempt, max_retries, self.host)
            client = self._client_factory()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            try:
                client.connect(
                    self.host,
                    port=self.port,
                    username=self.username,
                    password=self.password,
                    timeout=timeout,
                    banner_timeout=timeout,
                    auth_timeout=timeout,
                    look_for_keys=False,
                    allow_agent=False,
                )
            except (paramiko.SSHException, OSError) as e:
                last_error = e
                client.close()
                logger.warning("SSH connection attempt %d/%d failed: %s", attempt, max_retries, e)
                if attempt < max_retries:
                    self._sleep(self.config.retry_delay_ms * attempt / 1000)
                continue

            self._client = client
            logger.info("SSH connection established: %s@%s:%d", self.username, self.host, self.port)
            return

        raise SshConnectionError(
            f"Failed to connect to {self.host}:{self.port} after {max_retries} attempts: {last_error}",
            attempts=max_retries,
        ) from last_error

    def upload_file(self, content: str, remote_path: str, mode: int = 0o600) -> None:
        """Write ``content`` to a temp file, SFTP it to ``remote_path`` and chmod it."""
        logger.debug("Uploading content to: %s", remote_path)
        sftp = self._open_sftp()
        with tempfile.NamedTemporaryFile("w", prefix="autocert-", suffix=".tmp", delete=False) as tmp:
            tmp.write(content)
            local_path = tmp.name
        try:
            self._ensure_remote_dir(sftp, posixpath.dirname(remote_path))
            sftp.put(local_path, remote_path)
            sftp.chmod(remote_path, mode)
        finally:
            os.unlink(local_path)
        logger.info("Content uploaded successfully: %s", remote_path)

    def remove_file(self, remote_path: str) -> None:
        self._open_sftp().remove(remote_path)

    def execute_command(self, command: str, stdin_data: Optional[str] = None) -> CommandResult:
        if self._client is None:
            raise DistributionError("SSH session is not connected")
        logger.debug("Executing command: %s", command)
        timeout = self.config.timeout_ms / 1000
        stdin, stdout, stderr = self._client.exec_command(command, timeout=timeout)
        if stdin_data is not None:
            stdin.write(stdin_data)
            stdin.flush()
            stdin.channel.shutdown_write()
        # Output must be drained before waiting for the exit status.
        out = stdout.read().decode("utf-8", errors="replace").strip()
        err = stderr.read().decode("utf-8", errors="replace").strip()
        exit_code = stdout.channel.recv_exit_status()
        result = CommandResult(command=command, exit_code=exit_code, stdout=out, stderr=err)
        if result.success:
            logger.info("Command executed successfully: %s", command)
        else:
            logger.warning("Command failed with exit code %d: %s", exit_code, result.stderr)
        return result

    def execute_sudo(self, command: str) -> CommandResult:
        """Run ``command`` through sudo, feeding the login password on stdin."""
        return self.execute_command(f"sudo -S -p '' {command}", stdin_data=self.password + "\n")

    def close(self) -> None:
        if self._sftp is not None:
            try:
                self._sftp.close()
            except Exception as e:
                logger.warning("Error closing SFTP channel: %s", e)
            self._sftp = None
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Error closing SSH connection: %s", e)
            self._client = None
            logger.debug("SSH connection closed")

    def _open_sftp(self):
        if self._client is None:
            raise DistributionError("SSH session is not connected")
        if self._sftp is None:
            self._sftp = self._client.open_sftp()
        return self._sftp

    @staticmethod
    def _ensure_remote_dir(sftp, remote_dir: str) -> None:
        if not remote_dir or remote_dir == "/":
            return
        try:
            sftp.stat(remote_dir)
            return
        except IOError:
            pass
        SshClient._ensure_remote_dir(sftp, posixpath.dirname(remote_dir))
        logger.debug("Creating remote directory: %s", remote_dir)
        sftp.mkdir(remote_dir)
