"""Tests for the renewal scheduler jobs."""

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from autocert import scheduler as scheduler_module
from autocert.errors import AcmeProtocolError
from autocert.models import Certificate, CertificateStatus
from autocert.scheduler import init_scheduler, run_auto_renewals, run_expiry_report


def _cert(domain, status=CertificateStatus.ACTIVE, days=10):
    return Certificate(
        domain=domain, status=status,
        expires_at=datetime.now(timezone.utc) + timedelta(days=days),
    )


class TestRunAutoRenewals(unittest.TestCase):

    def test_renews_renewable_candidates(self):
        service = MagicMock()
        ok = _cert("a.example.com")
        bad = _cert("b.example.com", CertificateStatus.EXPIRED, days=-1)
        failed = _cert("c.example.com", CertificateStatus.FAILED)
        service.find_expiring_certificates.return_value = [ok, bad, failed]

        def renew(certificate_id):
            if certificate_id == bad.certificate_id:
                raise AcmeProtocolError("DNS problem")

        service.renew.side_effect = renew

        summary = run_auto_renewals(service, 30)

        service.refresh_statuses.assert_called_once()
        service.find_expiring_certificates.assert_called_once_with(30)
        self.assertEqual(summary, {"candidates": 2, "renewed": 1, "failed": 1})
        renewed_ids = [c.args[0] for c in service.renew.call_args_list]
        self.assertNotIn(failed.certificate_id, renewed_ids)

    def test_nothing_due(self):
        service = MagicMock()
        service.find_expiring_certificates.return_value = []
        self.assertEqual(run_auto_renewals(service, 30), {"candidates": 0, "renewed": 0, "failed": 0})
        service.renew.assert_not_called()

    def test_job_never_raises(self):
        service = MagicMock()
        service.refresh_statuses.side_effect = RuntimeError("store offline")
        self.assertEqual(run_auto_renewals(service, 30)["candidates"], 0)


class TestRunExpiryReport(unittest.TestCase):

    def test_reports_active_only(self):
        service = MagicMock()
        active = _cert("a.example.com", days=3)
        service.find_expiring_certificates.return_value = [
            active, _cert("b.example.com", CertificateStatus.FAILED, days=3),
        ]
        with self.assertLogs("autocert.scheduler", level="WARNING"):
            self.assertEqual(run_expiry_report(service, 7), [active])

    def test_failure_returns_empty(self):
        service = MagicMock()
        service.find_expiring_certificates.side_effect = RuntimeError("boom")
        self.assertEqual(run_expiry_report(service, 7), [])


class TestInitScheduler(unittest.TestCase):

    def test_registers_jobs(self):
        fake = MagicMock()
        fake.running = False
        service = MagicMock()
        with patch.object(scheduler_module, "scheduler", fake):
            init_scheduler(service)

        job_ids = [c.kwargs["id"] for c in fake.add_job.call_args_list]
        self.assertEqual(job_ids, ["certificate_auto_renewal", "certificate_expiry_report"])
        renewal = fake.add_job.call_args_list[0].kwargs
        self.assertIs(renewal["func"], run_auto_renewals)
        self.assertEqual(renewal["trigger"], "interval")
        self.assertIs(renewal["args"][0], service)
        fake.start.assert_called_once()

    def test_running_scheduler_untouched(self):
        fake = MagicMock()
        fake.running = True
        with patch.object(scheduler_module, "scheduler", fake):
            init_scheduler(MagicMock())
        fake.add_job.assert_not_called()


if __name__ == "__main__":
    unittest.main()
