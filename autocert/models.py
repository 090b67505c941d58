"""Data model for certificates, ACME accounts, servers and deployments."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from autocert.errors import ConfigurationError, ValidationError


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def fmt_dt(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def parse_dt(val) -> Optional[datetime]:
    if not val:
        return None
    dt = datetime.fromisoformat(val)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class CertificateStatus(str, Enum):
    """Lifecycle state of a managed certificate."""

    PENDING = "pending"
    ISSUING = "issuing"
    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    RENEWING = "renewing"
    REVOKED = "revoked"
    FAILED = "failed"
    INACTIVE = "inactive"

    @property
    def is_valid(self) -> bool:
        return self in (CertificateStatus.ACTIVE, CertificateStatus.EXPIRING_SOON)

    @property
    def is_renewable(self) -> bool:
        return self in (
            CertificateStatus.ACTIVE,
            CertificateStatus.EXPIRING_SOON,
            CertificateStatus.EXPIRED,
        )

    @property
    def is_processing(self) -> bool:
        return self in (
            CertificateStatus.PENDING,
            CertificateStatus.ISSUING,
            CertificateStatus.RENEWING,
        )


class ChallengeType(str, Enum):
    """ACME challenge mechanisms, keyed by their protocol string."""

    HTTP_01 = "http-01"
    DNS_01 = "dns-01"
    TLS_ALPN_01 = "tls-alpn-01"

    @classmethod
    def default(cls) -> "ChallengeType":
        # Wildcard issuance needs DNS-01 and it requires no inbound HTTP.
        return cls.DNS_01

    @classmethod
    def from_value(cls, value) -> "ChallengeType":
        """Resolve an enum member or protocol string.

        ``None`` and empty strings resolve to the default. Anything else that
        is not a known protocol string is a configuration error.
        """
        if isinstance(value, cls):
            return value
        if not value:
            return cls.default()
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ConfigurationError(f"Unsupported challenge type: {value}")


class WebServerType(str, Enum):
    """Web server software running on a deployment target."""

    NGINX = "nginx"
    APACHE = "apache"
    TOMCAT = "tomcat"
    WEBTOB = "webtob"
    IIS = "iis"
    JEUS = "jeus"
    WEBLOGIC = "weblogic"

    @classmethod
    def from_code(cls, code: str) -> "WebServerType":
        try:
            return cls(code.strip().lower())
        except (ValueError, AttributeError):
            raise ValidationError(f"Unknown web server type: {code}")


class AccountStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DEACTIVATED = "DEACTIVATED"


class DeploymentStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"
    ROLLED_BACK = "rolled_back"


@dataclass
class Server:
    """A deployment target reachable over SSH."""

    name: str
    ip_address: str
    port: int = 22
    web_server_type: WebServerType = WebServerType.NGINX
    description: str = ""
    username: str = ""
    password: str = ""
    deploy_path: str = ""
    server_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {
            "server_id": self.server_id,
            "name": self.name,
            "ip_address": self.ip_address,
            "port": self.port,
            "web_server_type": self.web_server_type.value,
            "description": self.description,
            "username": self.username,
            "password": self.password,
            "deploy_path": self.deploy_path,
            "created_at": fmt_dt(self.created_at),
            "updated_at": fmt_dt(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Server":
        return cls(
            server_id=data.get("server_id", _new_id()),
            name=data["name"],
            ip_address=data["ip_address"],
            port=data.get("port", 22),
            web_server_type=WebServerType(data.get("web_server_type", "nginx")),
            description=data.get("description", ""),
            username=data.get("username", ""),
            password=data.get("password", ""),
            deploy_path=data.get("deploy_path", ""),
            created_at=parse_dt(data.get("created_at")) or _now(),
            updated_at=parse_dt(data.get("updated_at")) or _now(),
        )


@dataclass
class Certificate:
    """A managed TLS certificate for a single domain.

    ``private_key_pem`` holds the AES-GCM encrypted key once issued. Records
    written by older versions may still hold plaintext PEM.
    """

    domain: str
    status: CertificateStatus = CertificateStatus.PENDING
    certificate_pem: str = ""
    private_key_pem: str = ""
    chain_pem: str = ""
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    admin: str = ""
    alert_days_before_expiry: int = 7
    auto_deploy: bool = False
    server_id: Optional[str] = None
    challenge_type: str = ChallengeType.DNS_01.value
    renewal_attempts: int = 0
    last_error: str = ""
    certificate_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def days_until_expiry(self, now: Optional[datetime] = None) -> Optional[int]:
        if not self.expires_at:
            return None
        now = now or _now()
        return (self.expires_at - now).days

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if not self.expires_at:
            return False
        return self.expires_at <= (now or _now())

    def to_dict(self) -> dict:
        return {
            "certificate_id": self.certificate_id,
            "domain": self.domain,
            "status": self.status.value,
            "certificate_pem": self.certificate_pem,
            "private_key_pem": self.private_key_pem,
            "chain_pem": self.chain_pem,
            "issued_at": fmt_dt(self.issued_at),
            "expires_at": fmt_dt(self.expires_at),
            "admin": self.admin,
            "alert_days_before_expiry": self.alert_days_before_expiry,
            "auto_deploy": self.auto_deploy,
            "server_id": self.server_id,
            "challenge_type": self.challenge_type,
            "renewal_attempts": self.renewal_attempts,
            "last_error": self.last_error,
            "created_at": fmt_dt(self.created_at),
            "updated_at": fmt_dt(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Certificate":
        return cls(
            certificate_id=data.get("certificate_id", _new_id()),
            domain=data["domain"],
            status=CertificateStatus(data.get("status", "pending")),
            certificate_pem=data.get("certificate_pem", ""),
            private_key_pem=data.get("private_key_pem", ""),
            chain_pem=data.get("chain_pem", ""),
            issued_at=parse_dt(data.get("issued_at")),
            expires_at=parse_dt(data.get("expires_at")),
            admin=data.get("admin", ""),
            alert_days_before_expiry=data.get("alert_days_before_expiry", 7),
            auto_deploy=data.get("auto_deploy", False),
            server_id=data.get("server_id"),
            challenge_type=data.get("challenge_type", ChallengeType.DNS_01.value),
            renewal_attempts=data.get("renewal_attempts", 0),
            last_error=data.get("last_error", ""),
            created_at=parse_dt(data.get("created_at")) or _now(),
            updated_at=parse_dt(data.get("updated_at")) or _now(),
        )


@dataclass
class AcmeAccount:
    """An ACME account registered with one CA directory."""

    email: str
    server_url: str
    private_key_pem: str = ""
    public_key_pem: str = ""
    account_url: str = ""
    status: AccountStatus = AccountStatus.ACTIVE
    key_algorithm: str = "RSA"
    key_size: int = 2048
    terms_agreed: bool = True
    last_used_at: Optional[datetime] = None
    account_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "email": self.email,
            "server_url": self.server_url,
            "private_key_pem": self.private_key_pem,
            "public_key_pem": self.public_key_pem,
            "account_url": self.account_url,
            "status": self.status.value,
            "key_algorithm": self.key_algorithm,
            "key_size": self.key_size,
            "terms_agreed": self.terms_agreed,
            "last_used_at": fmt_dt(self.last_used_at),
            "created_at": fmt_dt(self.created_at),
            "updated_at": fmt_dt(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AcmeAccount":
        return cls(
            account_id=data.get("account_id", _new_id()),
            email=data["email"],
            server_url=data["server_url"],
            private_key_pem=data.get("private_key_pem", ""),
            public_key_pem=data.get("public_key_pem", ""),
            account_url=data.get("account_url", ""),
            status=AccountStatus(data.get("status", "ACTIVE")),
            key_algorithm=data.get("key_algorithm", "RSA"),
            key_size=data.get("key_size", 2048),
            terms_agreed=data.get("terms_agreed", True),
            last_used_at=parse_dt(data.get("last_used_at")),
            created_at=parse_dt(data.get("created_at")) or _now(),
            updated_at=parse_dt(data.get("updated_at")) or _now(),
        )


@dataclass
class Deployment:
    """One distribution attempt of a certificate to a server."""

    certificate_id: str
    server_id: str
    status: DeploymentStatus = DeploymentStatus.IN_PROGRESS
    deploy_path: str = ""
    message: str = ""
    duration_ms: Optional[int] = None
    deployment_id: str = field(default_factory=_new_id)
    deployed_at: datetime = field(default_factory=_now)

    @property
    def is_terminal(self) -> bool:
        return self.status != DeploymentStatus.IN_PROGRESS

    def to_dict(self) -> dict:
        return {
            "deployment_id": self.deployment_id,
            "certificate_id": self.certificate_id,
            "server_id": self.server_id,
            "status": self.status.value,
            "deploy_path": self.deploy_path,
            "message": self.message,
            "duration_ms": self.duration_ms,
            "deployed_at": fmt_dt(self.deployed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Deployment":
        return cls(
            deployment_id=data.get("deployment_id", _new_id()),
            certificate_id=data["certificate_id"],
            server_id=data["server_id"],
            status=DeploymentStatus(data.get("status", "in_progress")),
            deploy_path=data.get("deploy_path", ""),
            message=data.get("message", ""),
            duration_ms=data.get("duration_ms"),
            deployed_at=parse_dt(data.get("deployed_at")) or _now(),
        )
