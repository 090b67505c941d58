"""HTTP-01 challenge handler: serve the key authorization from a web root."""

import logging
import os
from pathlib import Path
from typing import Optional

from autocert.challenge.base import AcmeChallenge, ChallengeHandler
from autocert.models import ChallengeType
from autocert.utils.helpers import Deadline

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = (".well-known", "acme-challenge")


class Http01ChallengeHandler(ChallengeHandler):
    """Write ``/.well-known/acme-challenge/<token>`` under the web root.

    The web server for the domain must serve that directory on port 80.
    Polling allows 60 attempts (about three minutes at 3s).
    """

    challenge_type = ChallengeType.HTTP_01
    max_attempts = 60

    def __init__(self, webroot: Optional[str] = None, poll_interval: Optional[int] = None):
        if webroot is None:
            from config.settings import ACME_HTTP_WEBROOT
            webroot = ACME_HTTP_WEBROOT
        if poll_interval is None:
            from config.settings import ACME_CHALLENGE_POLL_INTERVAL
            poll_interval = ACME_CHALLENGE_POLL_INTERVAL
        self.webroot = Path(webroot)
        self.poll_interval = poll_interval

    @property
    def challenge_dir(self) -> Path:
        return self.webroot.joinpath(*WELL_KNOWN_PATH)

    def token_path(self, token: str) -> Path:
        return self.challenge_dir / token

    def prepare(self, domain: str, challenge: AcmeChallenge, deadline: Optional[Deadline] = None) -> None:
        logger.info("Preparing HTTP-01 challenge for domain: %s", domain)
        challenge_dir = self.challenge_dir
        if not challenge_dir.exists():
            challenge_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Created challenge directory: %s", challenge_dir)

        token_file = self.token_path(challenge.token)
        token_file.write_text(challenge.validation())
        os.chmod(token_file, 0o644)
        logger.info("HTTP-01 challenge file created: %s", token_file)

    def cleanup(self, domain: str, challenge: AcmeChallenge) -> None:
        try:
            token_file = self.token_path(challenge.token)
            if token_file.exists():
                token_file.unlink()
                logger.info("HTTP-01 challenge file deleted: %s", token_file)
        except Exception as e:
            logger.warning("Failed to delete challenge file for %s: %s", domain, e)
