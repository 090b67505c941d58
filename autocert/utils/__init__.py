"""Certificate utility functions."""

from autocert.utils.helpers import (
    Deadline,
    fingerprint,
    load_certificate,
    load_certificates,
    parse_pem_chain,
    split_fullchain,
)

__all__ = [
    "Deadline", "fingerprint", "load_certificate", "load_certificates",
    "parse_pem_chain", "split_fullchain",
]
