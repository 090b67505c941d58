"""Tests for the command line entry point."""

import unittest
from unittest.mock import MagicMock, patch

import main
from autocert.errors import DuplicateResourceError
from autocert.models import Certificate, CertificateStatus


class TestParser(unittest.TestCase):

    def test_issue_arguments(self):
        args = main.build_parser().parse_args(
            ["issue", "example.com", "--challenge", "http-01", "--auto-deploy"]
        )
        self.assertEqual(args.domain, "example.com")
        self.assertEqual(args.challenge, "http-01")
        self.assertTrue(args.auto_deploy)
        self.assertIs(args.func, main.cmd_issue)

    def test_rejects_unknown_challenge(self):
        with self.assertRaises(SystemExit):
            main.build_parser().parse_args(["issue", "example.com", "--challenge", "smtp-01"])

    def test_server_add_requires_credentials(self):
        with self.assertRaises(SystemExit):
            main.build_parser().parse_args(["server-add", "web1", "10.0.0.1"])


class TestCommands(unittest.TestCase):

    def setUp(self):
        self.services = MagicMock()
        patcher = patch("main._services", return_value=self.services)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _run(self, argv):
        with patch("sys.argv", ["main.py"] + argv):
            main.main()

    def test_issue(self):
        self.services.certificates.create.return_value = Certificate(
            domain="example.com", status=CertificateStatus.ACTIVE,
        )
        with patch("builtins.print") as mock_print:
            self._run(["issue", "example.com", "--challenge", "dns-01"])
        kwargs = self.services.certificates.create.call_args.kwargs
        self.assertEqual(kwargs["challenge_type"], "dns-01")
        self.assertTrue(any("active" in str(c) for c in mock_print.call_args_list))

    def test_engine_error_exits_with_code(self):
        self.services.certificates.create.side_effect = DuplicateResourceError("Domain already exists: example.com")
        with patch("builtins.print") as mock_print:
            with self.assertRaises(SystemExit) as ctx:
                self._run(["issue", "example.com"])
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("DUPLICATE_RESOURCE", str(mock_print.call_args))

    def test_deploy_failure(self):
        self.services.certificates.deploy.return_value = False
        self.services.stores = {"deployments": MagicMock()}
        self.services.stores["deployments"].latest_for.return_value = MagicMock(message="Deployment failed: refused")
        with patch("builtins.print"):
            with self.assertRaises(SystemExit):
                self._run(["deploy", "abc"])

    def test_gen_key(self):
        with patch("builtins.print") as mock_print:
            self._run(["gen-key"])
        self.assertEqual(len(mock_print.call_args.args[0]), 44)


if __name__ == "__main__":
    unittest.main()
