"""Background scheduler for periodic renewal and expiry checks."""

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from autocert.models import CertificateStatus

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)


def init_scheduler(service):
    """Register the renewal and expiry jobs for ``service`` and start.

    ``service`` is a CertificateService. Calling this again while the
    scheduler runs is a no-op.
    """
    from config.settings import EXPIRY_ALERT_DAYS, RENEWAL_CHECK_INTERVAL_HOURS, RENEWAL_THRESHOLD_DAYS

    if scheduler.running:
        return

    scheduler.add_job(
        func=run_auto_renewals,
        trigger="interval",
        hours=RENEWAL_CHECK_INTERVAL_HOURS,
        args=[service, RENEWAL_THRESHOLD_DAYS],
        id="certificate_auto_renewal",
        replace_existing=True,
    )
    scheduler.add_job(
        func=run_expiry_report,
        trigger="interval",
        hours=24,
        args=[service, EXPIRY_ALERT_DAYS],
        id="certificate_expiry_report",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(
        "Scheduler started: auto-renewal every %d hour(s) (threshold %d days), "
        "expiry report every 24 hour(s)",
        RENEWAL_CHECK_INTERVAL_HOURS,
        RENEWAL_THRESHOLD_DAYS,
    )


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)


def run_auto_renewals(service, threshold_days: int) -> dict:
    """Renew every renewable certificate expiring within ``threshold_days``.

    Returns:
        Counts: ``candidates``, ``renewed`` and ``failed``.
    """
    logger.info("Running certificate auto-renewal check...")
    summary = {"candidates": 0, "renewed": 0, "failed": 0}

    try:
        service.refresh_statuses()
        candidates = [
            c for c in service.find_expiring_certificates(threshold_days)
            if c.status.is_renewable
        ]
        summary["candidates"] = len(candidates)

        if not candidates:
            logger.info("No certificates due for renewal")
            return summary

        for certificate in candidates:
            try:
                logger.info("Auto-renewing %s (%s days remaining)",
                            certificate.domain, certificate.days_until_expiry())
                service.renew(certificate.certificate_id)
                summary["renewed"] += 1
            except Exception:
                summary["failed"] += 1
                logger.exception("Auto-renewal error for %s", certificate.domain)

        logger.info("Auto-renewal complete: %d/%d renewed", summary["renewed"], len(candidates))
    except Exception:
        logger.exception("Certificate auto-renewal job failed")

    return summary


def run_expiry_report(service, alert_days: int) -> list:
    """Log ACTIVE certificates expiring within ``alert_days``; return them."""
    logger.info("Running certificate expiry report...")
    try:
        expiring = [
            c for c in service.find_expiring_certificates(alert_days)
            if c.status == CertificateStatus.ACTIVE
        ]
    except Exception:
        logger.exception("Certificate expiry report failed")
        return []

    for certificate in expiring:
        logger.warning("Certificate for %s expires in %s day(s) (admin: %s)",
                       certificate.domain, certificate.days_until_expiry(), certificate.admin or "-")
    logger.info("Expiry report complete: %d certificate(s) expiring within %d days",
                len(expiring), alert_days)
    return expiring
