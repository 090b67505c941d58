"""Record stores for certificates, servers, deployments and ACME accounts.

Every store keeps records in memory. When constructed with a storage path it
also persists the full set as a JSON list after each write, and reloads it on
start-up.
"""

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from autocert.errors import DuplicateResourceError
from autocert.models import (
    AcmeAccount,
    Certificate,
    CertificateStatus,
    Deployment,
    Server,
    WebServerType,
)

logger = logging.getLogger(__name__)


@dataclass
class Page:
    """One page of a listing."""

    items: list = field(default_factory=list)
    total: int = 0
    page: int = 0
    size: int = 20

    @property
    def pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.pages


def paginate(items: list, page: int = 0, size: int = 20) -> Page:
    """Slice an already ordered list into a Page (zero-based page index)."""
    page = max(page, 0)
    start = page * size
    return Page(items=items[start:start + size], total=len(items), page=page, size=size)


class RecordStore:
    """Keyed record store, in memory with optional JSON-file persistence."""

    model = None
    id_field = ""

    def __init__(self, storage_path: Optional[str] = None):
        self._path = Path(storage_path) if storage_path else None
        if self._path:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._records: dict = {}
        self._load()

    # ---- CRUD ----

    def save(self, record):
        """Insert or replace a record, enforcing the store's unique keys."""
        with self._lock:
            self._check_unique(record)
            if hasattr(record, "updated_at"):
                record.updated_at = datetime.now(timezone.utc)
            self._records[self._key(record)] = record
            self._save()
            return record

    def get(self, record_id: str):
        with self._lock:
            return self._records.get(record_id)

    def delete(self, record_id: str) -> bool:
        with self._lock:
            if record_id in self._records:
                del self._records[record_id]
                self._save()
                return True
            return False

    def list_all(self) -> list:
        return sorted(self._snapshot(), key=self._sort_key)

    def list_page(self, page: int = 0, size: int = 20) -> Page:
        return paginate(self.list_all(), page, size)

    def filter(self, predicate: Callable) -> list:
        return [r for r in self.list_all() if predicate(r)]

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def _snapshot(self) -> list:
        with self._lock:
            return list(self._records.values())

    # ---- Hooks ----

    def _check_unique(self, record) -> None:
        """Raise DuplicateResourceError if the record clashes with another."""

    def _key(self, record) -> str:
        return getattr(record, self.id_field)

    @staticmethod
    def _sort_key(record):
        return getattr(record, "created_at", None) or datetime.min.replace(tzinfo=timezone.utc)

    # ---- Persistence ----

    def _save(self) -> None:
        if not self._path:
            return
        data = [r.to_dict() for r in self._records.values()]
        # Atomic write: temp file in the same directory, then replace
        fd, temp_path = tempfile.mkstemp(dir=str(self._path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(json.dumps(data, indent=2, default=str))
            os.replace(temp_path, str(self._path))
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def _load(self) -> None:
        if not self._path or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text())
            records = [self.model.from_dict(item) for item in data]
        except (json.JSONDecodeError, KeyError, ValueError, TypeError, AttributeError) as exc:
            backup = self._path.with_name(
                f"{self._path.name}.corrupt-{datetime.now(timezone.utc):%Y%m%d%H%M%S}"
            )
            os.replace(str(self._path), str(backup))
            logger.error("Could not load %s (%s); moved it to %s", self._path, exc, backup)
            return
        for record in records:
            self._records[self._key(record)] = record


class CertificateStore(RecordStore):
    """Certificates keyed by id; the domain is globally unique."""

    model = Certificate
    id_field = "certificate_id"

    def _check_unique(self, record: Certificate) -> None:
        domain = record.domain.lower()
        if any(c.domain.lower() == domain and c.certificate_id != record.certificate_id
               for c in self._snapshot()):
            raise DuplicateResourceError(f"Domain already exists: {record.domain}")

    def find_by_domain(self, domain: str) -> Optional[Certificate]:
        domain = domain.lower()
        for cert in self._snapshot():
            if cert.domain.lower() == domain:
                return cert
        return None

    def exists_by_domain(self, domain: str) -> bool:
        return self.find_by_domain(domain) is not None

    def by_status(self, status: CertificateStatus) -> list[Certificate]:
        return self.filter(lambda c: c.status == status)

    def search(self, pattern: str) -> list[Certificate]:
        """Case-insensitive substring match on the domain."""
        pattern = pattern.lower()
        return self.filter(lambda c: pattern in c.domain.lower())

    def expiring_before(self, moment: datetime) -> list[Certificate]:
        results = self.filter(lambda c: c.expires_at is not None and c.expires_at < moment)
        return sorted(results, key=lambda c: c.expires_at)

    def by_server(self, server_id: str) -> list[Certificate]:
        return self.filter(lambda c: c.server_id == server_id)


class ServerStore(RecordStore):
    """Deployment targets keyed by id; the IP address is unique."""

    model = Server
    id_field = "server_id"

    def _check_unique(self, record: Server) -> None:
        if any(s.ip_address == record.ip_address and s.server_id != record.server_id
               for s in self._snapshot()):
            raise DuplicateResourceError(f"IP address already exists: {record.ip_address}")

    def find_by_ip(self, ip_address: str) -> Optional[Server]:
        for server in self._snapshot():
            if server.ip_address == ip_address:
                return server
        return None

    def exists_by_ip(self, ip_address: str) -> bool:
        return self.find_by_ip(ip_address) is not None

    def by_web_server_type(self, web_server_type: WebServerType) -> list[Server]:
        return self.filter(lambda s: s.web_server_type == web_server_type)

    def search(self, pattern: str) -> list[Server]:
        """Case-insensitive substring match on name or IP address."""
        pattern = pattern.lower()
        return self.filter(
            lambda s: pattern in s.name.lower() or pattern in s.ip_address.lower()
        )


class DeploymentStore(RecordStore):
    """Append-only audit trail of distribution attempts."""

    model = Deployment
    id_field = "deployment_id"

    @staticmethod
    def _sort_key(record: Deployment):
        return record.deployed_at

    def append(self, deployment: Deployment) -> Deployment:
        return self.save(deployment)

    def by_certificate(self, certificate_id: str) -> list[Deployment]:
        return self.filter(lambda d: d.certificate_id == certificate_id)

    def by_server(self, server_id: str) -> list[Deployment]:
        return self.filter(lambda d: d.server_id == server_id)

    def between(self, start: datetime, end: datetime) -> list[Deployment]:
        return self.filter(lambda d: start <= d.deployed_at <= end)

    def latest_for(self, certificate_id: str) -> Optional[Deployment]:
        history = self.by_certificate(certificate_id)
        return history[-1] if history else None


class AcmeAccountStore(RecordStore):
    """ACME accounts; (email, server URL) identifies an account."""

    model = AcmeAccount
    id_field = "account_id"

    def _check_unique(self, record: AcmeAccount) -> None:
        if not record.is_active:
            return
        if any(a.is_active and a.email == record.email and a.server_url == record.server_url
               and a.account_id != record.account_id for a in self._snapshot()):
            raise DuplicateResourceError(
                f"ACME account already exists for {record.email} at {record.server_url}"
            )

    def find_by_email_and_server(self, email: str, server_url: str) -> Optional[AcmeAccount]:
        """Return the ACTIVE account for (email, server URL), if any."""
        for account in self._snapshot():
            if account.is_active and account.email == email and account.server_url == server_url:
                return account
        return None

    def active(self) -> list[AcmeAccount]:
        return self.filter(lambda a: a.is_active)


def open_stores(data_dir: Optional[str] = None) -> dict:
    """Build the four stores, JSON-backed under ``data_dir`` or in memory."""
    def path(name):
        return str(Path(data_dir) / name) if data_dir else None

    return {
        "certificates": CertificateStore(path("certificates.json")),
        "servers": ServerStore(path("servers.json")),
        "deployments": DeploymentStore(path("deployments.json")),
        "accounts": AcmeAccountStore(path("acme_accounts.json")),
    }
