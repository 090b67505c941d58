#!/usr/bin/env python3
"""
ACME Certificate Lifecycle Tool - Main Entry Point.

Usage:
    python main.py issue <domain> [--challenge dns-01|http-01] [--server <id>] [--auto-deploy]
    python main.py renew <certificate_id>
    python main.py list [--status <status>] [--search <text>]
    python main.py expiring [--days 30]
    python main.py validate <certificate_id>
    python main.py validate --pem cert.pem [--chain chain.pem]
    python main.py deploy <certificate_id>
    python main.py server-add <name> <ip> --username <u> --password <p> [--type nginx]
    python main.py server-list [--type nginx] [--search <text>]
    python main.py accounts
    python main.py account-deactivate <account_id> [--local-only]
    python main.py renew-due [--days 30]
    python main.py scheduler
    python main.py gen-key
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()  # Load .env file if present

from config import settings  # noqa: E402
from autocert.encryption import generate_key  # noqa: E402
from autocert.errors import AutoCertError  # noqa: E402
from autocert.models import CertificateStatus, ChallengeType, WebServerType  # noqa: E402

logger = logging.getLogger("autocert")


def _services():
    from autocert.services import build_services
    return build_services()


def _fmt_date(dt):
    return dt.strftime("%Y-%m-%d") if dt else "-"


def _print_certificate(cert):
    days = cert.days_until_expiry()
    days_text = f"{days:4d} days" if days is not None else "       -"
    print(f"  {cert.certificate_id}  {cert.domain:35s} {cert.status.value:14s} "
          f"expires: {_fmt_date(cert.expires_at)} ({days_text})")


# ============================================================
# Certificate Commands
# ============================================================

def cmd_issue(args):
    """Issue a certificate for a new domain."""
    services = _services()
    cert = services.certificates.create(
        args.domain,
        challenge_type=args.challenge,
        server_id=args.server,
        admin=args.admin or "",
        alert_days=args.alert_days,
        auto_deploy=args.auto_deploy,
    )
    print(f"ID:      {cert.certificate_id}")
    print(f"Domain:  {cert.domain}")
    print(f"Status:  {cert.status.value}")
    print(f"Issued:  {_fmt_date(cert.issued_at)}")
    print(f"Expires: {_fmt_date(cert.expires_at)}")


def cmd_renew(args):
    """Renew a certificate with a new key."""
    services = _services()
    cert = services.certificates.renew(args.certificate_id)
    print(f"Renewed {cert.domain}: expires {_fmt_date(cert.expires_at)}")


def cmd_list(args):
    """List managed certificates."""
    services = _services()
    if args.search:
        certs = services.certificates.search(args.search)
    elif args.status:
        certs = services.certificates.by_status(args.status, args.page, args.size).items
    else:
        certs = services.certificates.list_page(args.page, args.size).items
    if not certs:
        print("No certificates found.")
        return
    for cert in certs:
        _print_certificate(cert)


def cmd_expiring(args):
    """List certificates expiring within N days."""
    services = _services()
    certs = services.certificates.find_expiring_certificates(args.days)
    if not certs:
        print(f"No certificates expiring within {args.days} days.")
        return
    for cert in certs:
        _print_certificate(cert)


def cmd_validate(args):
    """Run the six validation checks."""
    services = _services()
    if args.pem:
        chain = Path(args.chain).read_text() if args.chain else None
        result = services.validation.validate_certificate_pem(Path(args.pem).read_text(), chain)
    elif args.certificate_id:
        result = services.validation.validate(args.certificate_id)
    else:
        print("Provide a certificate id or --pem")
        sys.exit(1)

    print(f"{'VALID' if result.valid else 'INVALID'} - {result.subject}")
    for name, check in result.checks().items():
        if check is None:
            continue
        tag = "OK" if check.valid else "FAIL"
        print(f"  [{tag:4s}] {name:10s} {check.message}")
    for warning in result.warnings:
        print(f"  warning: {warning}")
    for error in result.errors:
        print(f"  error:   {error}")
    if not result.valid:
        sys.exit(2)


def cmd_deploy(args):
    """Deploy a certificate to its server."""
    services = _services()
    if services.certificates.deploy(args.certificate_id):
        print("Deployment succeeded.")
    else:
        latest = services.stores["deployments"].latest_for(args.certificate_id)
        print(f"Deployment failed: {latest.message if latest else 'unknown error'}")
        sys.exit(1)


def cmd_renew_due(args):
    """Renew every certificate expiring within N days."""
    from autocert.scheduler import run_auto_renewals

    services = _services()
    summary = run_auto_renewals(services.certificates, args.days)
    print(f"Candidates: {summary['candidates']}  renewed: {summary['renewed']}  failed: {summary['failed']}")


def cmd_scheduler(args):
    """Run the renewal scheduler in the foreground."""
    from autocert.scheduler import init_scheduler, shutdown_scheduler

    if not settings.SCHEDULER_ENABLED:
        print("Scheduler is disabled (SCHEDULER_ENABLED=false).")
        return
    services = _services()
    init_scheduler(services.certificates)
    try:
        while True:
            time.sleep(60)
    except KeyboardInterrupt:
        shutdown_scheduler()


# ============================================================
# Server & Account Commands
# ============================================================

def cmd_server_add(args):
    """Register a deployment target."""
    services = _services()
    server = services.servers.create(
        args.name,
        args.ip,
        web_server_type=args.type,
        username=args.username,
        password=args.password,
        port=args.port,
        description=args.description or "",
        deploy_path=args.deploy_path or "",
    )
    print(f"Server registered: {server.server_id} ({server.name}, {server.ip_address})")


def cmd_server_list(args):
    """List deployment targets."""
    services = _services()
    if args.search:
        servers = services.servers.search(args.search)
    elif args.type:
        servers = services.servers.by_web_server_type(args.type)
    else:
        servers = services.servers.list_page(0, 1000).items
    if not servers:
        print("No servers found.")
        return
    for server in servers:
        print(f"  {server.server_id}  {server.name:20s} {server.ip_address:16s} "
              f"{server.web_server_type.value:10s} {server.deploy_path or '-'}")


def cmd_accounts(args):
    """List ACME accounts."""
    services = _services()
    accounts = services.accounts.list_all()
    if not accounts:
        print("No ACME accounts found.")
        return
    for account in accounts:
        print(f"  {account.account_id}  {account.email or '-':30s} {account.status.value:12s} "
              f"{account.server_url}")


def cmd_account_deactivate(args):
    """Deactivate an ACME account."""
    services = _services()
    account = services.accounts.deactivate(args.account_id, remote=not args.local_only)
    print(f"Account {account.account_id} is now {account.status.value}")


def cmd_gen_key(args):
    """Print a new base64 AES-256 key for AUTOCERT_ENCRYPTION_KEY."""
    print(generate_key())


# ============================================================
# Parser
# ============================================================

def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(description="ACME Certificate Lifecycle Tool")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", help="Command")

    issue = sub.add_parser("issue", help="Issue a certificate")
    issue.add_argument("domain", help="Domain name")
    issue.add_argument("--challenge", choices=[c.value for c in ChallengeType],
                       default=settings.ACME_DEFAULT_CHALLENGE, help="Challenge type")
    issue.add_argument("--server", help="Server id to associate")
    issue.add_argument("--admin", help="Administrator contact")
    issue.add_argument("--alert-days", type=int, default=settings.DEFAULT_ALERT_DAYS,
                       help="Days before expiry to flag as expiring soon")
    issue.add_argument("--auto-deploy", action="store_true", help="Deploy after issuance")
    issue.set_defaults(func=cmd_issue)

    renew = sub.add_parser("renew", help="Renew a certificate")
    renew.add_argument("certificate_id", help="Certificate id")
    renew.set_defaults(func=cmd_renew)

    lst = sub.add_parser("list", help="List certificates")
    lst.add_argument("--status", choices=[s.value for s in CertificateStatus])
    lst.add_argument("--search", help="Domain substring")
    lst.add_argument("--page", type=int, default=0)
    lst.add_argument("--size", type=int, default=50)
    lst.set_defaults(func=cmd_list)

    exp = sub.add_parser("expiring", help="List expiring certificates")
    exp.add_argument("--days", type=int, default=settings.RENEWAL_THRESHOLD_DAYS)
    exp.set_defaults(func=cmd_expiring)

    val = sub.add_parser("validate", help="Validate a certificate")
    val.add_argument("certificate_id", nargs="?", help="Certificate id")
    val.add_argument("--pem", help="Certificate PEM file")
    val.add_argument("--chain", help="Chain PEM file")
    val.set_defaults(func=cmd_validate)

    dep = sub.add_parser("deploy", help="Deploy a certificate to its server")
    dep.add_argument("certificate_id", help="Certificate id")
    dep.set_defaults(func=cmd_deploy)

    sadd = sub.add_parser("server-add", help="Register a deployment server")
    sadd.add_argument("name", help="Server name")
    sadd.add_argument("ip", help="IP address")
    sadd.add_argument("--type", choices=[t.value for t in WebServerType], default="nginx")
    sadd.add_argument("--username", required=True)
    sadd.add_argument("--password", required=True)
    sadd.add_argument("--port", type=int, default=settings.SSH_DEFAULT_PORT)
    sadd.add_argument("--deploy-path", help="Remote directory for certificate files")
    sadd.add_argument("--description")
    sadd.set_defaults(func=cmd_server_add)

    slst = sub.add_parser("server-list", help="List deployment servers")
    slst.add_argument("--type", choices=[t.value for t in WebServerType])
    slst.add_argument("--search", help="Name or IP substring")
    slst.set_defaults(func=cmd_server_list)

    acc = sub.add_parser("accounts", help="List ACME accounts")
    acc.set_defaults(func=cmd_accounts)

    deact = sub.add_parser("account-deactivate", help="Deactivate an ACME account")
    deact.add_argument("account_id", help="Account id")
    deact.add_argument("--local-only", action="store_true", help="Do not contact the CA")
    deact.set_defaults(func=cmd_account_deactivate)

    due = sub.add_parser("renew-due", help="Renew certificates expiring soon")
    due.add_argument("--days", type=int, default=settings.RENEWAL_THRESHOLD_DAYS)
    due.set_defaults(func=cmd_renew_due)

    sch = sub.add_parser("scheduler", help="Run the renewal scheduler")
    sch.set_defaults(func=cmd_scheduler)

    key = sub.add_parser("gen-key", help="Generate an encryption key")
    key.set_defaults(func=cmd_gen_key)

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.LOG_LEVEL,
        format=settings.LOG_FORMAT,
    )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except AutoCertError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error [{e.code.value}]: {e.message}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
