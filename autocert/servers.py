"""Deployment target management."""

import dataclasses
import logging
from typing import Optional, Union

from autocert.errors import DuplicateResourceError, ResourceNotFoundError, ValidationError
from autocert.models import Server, WebServerType
from autocert.store import Page, ServerStore

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "name", "ip_address", "port", "web_server_type", "description",
    "username", "password", "deploy_path",
)


class ServerService:
    """CRUD for SSH deployment targets. IP addresses are unique."""

    def __init__(self, store: ServerStore):
        self.store = store

    def create(
        self,
        name: str,
        ip_address: str,
        web_server_type: Union[WebServerType, str] = WebServerType.NGINX,
        username: str = "",
        password: str = "",
        port: int = 22,
        description: str = "",
        deploy_path: str = "",
    ) -> Server:
        if not name or not ip_address:
            raise ValidationError("Server name and IP address are required")
        if not password:
            raise ValidationError("Password is required")
        if self.store.exists_by_ip(ip_address):
            raise DuplicateResourceError(f"IP address already exists: {ip_address}")

        server = Server(
            name=name,
            ip_address=ip_address,
            port=port,
            web_server_type=self._web_server_type(web_server_type),
            description=description,
            username=username,
            password=password,
            deploy_path=deploy_path,
        )
        self.store.save(server)
        logger.info("Server registered: %s (%s)", name, ip_address)
        return server

    def update(self, server_id: str, **fields) -> Server:
        server = self.get(server_id)
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        if "web_server_type" in fields:
            fields["web_server_type"] = self._web_server_type(fields["web_server_type"])
        if "password" in fields and not fields["password"]:
            # An empty password keeps the stored one.
            del fields["password"]
        return self.store.save(dataclasses.replace(server, **fields))

    def delete(self, server_id: str) -> None:
        server = self.get(server_id)
        self.store.delete(server_id)
        logger.info("Server deleted: %s (%s)", server.name, server.ip_address)

    def get(self, server_id: str) -> Server:
        server = self.store.get(server_id)
        if not server:
            raise ResourceNotFoundError(f"Server not found: {server_id}")
        return server

    def get_by_ip(self, ip_address: str) -> Optional[Server]:
        return self.store.find_by_ip(ip_address)

    def by_web_server_type(self, web_server_type: Union[WebServerType, str]) -> list[Server]:
        return self.store.by_web_server_type(self._web_server_type(web_server_type))

    def search(self, pattern: str) -> list[Server]:
        return self.store.search(pattern)

    def list_page(self, page: int = 0, size: int = 20) -> Page:
        return self.store.list_page(page, size)

    @staticmethod
    def _web_server_type(value: Union[WebServerType, str]) -> WebServerType:
        if isinstance(value, WebServerType):
            return value
        return WebServerType.from_code(value)
