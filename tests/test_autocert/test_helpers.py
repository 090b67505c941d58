"""Tests for PEM helpers and the Deadline poll guard."""

import threading
import time
import unittest

from autocert.errors import CertificateError, OperationCancelledError
from autocert.utils.helpers import (
    Deadline,
    fingerprint,
    load_certificate,
    load_certificates,
    parse_pem_chain,
    split_fullchain,
    validity_window,
)

from certgen import issued_fullchain, make_leaf, to_pem


class TestPemHelpers(unittest.TestCase):

    def test_split_fullchain(self):
        fullchain, root = issued_fullchain()
        leaf, chain = split_fullchain(fullchain)
        self.assertEqual(len(parse_pem_chain(leaf)), 1)
        self.assertEqual(load_certificates(chain), [root])

    def test_split_leaf_only(self):
        cert, _ = make_leaf()
        leaf, chain = split_fullchain(to_pem(cert))
        self.assertEqual(load_certificate(leaf), cert)
        self.assertEqual(chain, "")

    def test_split_empty(self):
        with self.assertRaises(CertificateError):
            split_fullchain("nothing here")

    def test_parse_empty(self):
        self.assertEqual(parse_pem_chain(""), [])

    def test_load_garbage(self):
        with self.assertRaises(CertificateError) as ctx:
            load_certificate("-----BEGIN CERTIFICATE-----\nAAAA\n-----END CERTIFICATE-----\n")
        self.assertTrue(ctx.exception.message.startswith("Failed to parse certificate"))

    def test_validity_window_is_aware(self):
        cert, _ = make_leaf()
        not_before, not_after = validity_window(cert)
        self.assertIsNotNone(not_before.tzinfo)
        self.assertLess(not_before, not_after)

    def test_fingerprint_format(self):
        cert, _ = make_leaf()
        fp = fingerprint(cert)
        self.assertEqual(len(fp.split(":")), 32)
        self.assertEqual(fp, fp.upper())


class TestDeadline(unittest.TestCase):

    def test_no_timeout(self):
        deadline = Deadline.none()
        self.assertIsNone(deadline.remaining())
        self.assertFalse(deadline.expired)
        self.assertTrue(deadline.sleep(0))

    def test_expires(self):
        deadline = Deadline(0.01)
        time.sleep(0.02)
        self.assertTrue(deadline.expired)
        self.assertEqual(deadline.remaining(), 0.0)
        self.assertFalse(deadline.sleep(1))

    def test_cancel_wakes_sleeper(self):
        deadline = Deadline.none()
        threading.Timer(0.05, deadline.cancel).start()
        started = time.monotonic()
        self.assertFalse(deadline.sleep(5))
        self.assertLess(time.monotonic() - started, 2)
        with self.assertRaises(OperationCancelledError):
            deadline.check()


if __name__ == "__main__":
    unittest.main()
