"""Challenge handler interface and the ACME challenge wrapper it works on."""

import logging
from dataclasses import dataclass
from typing import Optional

from acme import messages

from autocert.models import ChallengeType
from autocert.utils.helpers import Deadline

logger = logging.getLogger(__name__)


class ChallengeStatus:
    """Challenge states as reported by the CA."""

    PENDING = "pending"
    PROCESSING = "processing"
    VALID = "valid"
    INVALID = "invalid"


@dataclass
class ChallengeOutcome:
    """Result of triggering and polling one challenge."""

    success: bool
    challenge_type: str
    status: str = ""
    error: str = ""
    attempts: int = 0
    timed_out: bool = False


class AcmeChallenge:
    """One challenge of one authorization, bound to an ACME client session.

    Wraps the ``acme`` library objects so handlers only deal with token,
    key authorization, trigger and status refresh.
    """

    def __init__(self, client, authzr, challb):
        self.client = client
        self.authzr = authzr
        self.challb = challb

    @property
    def account_key(self):
        return self.client.net.key

    @property
    def typ(self) -> str:
        return self.challb.chall.typ

    @property
    def identifier(self) -> str:
        return self.authzr.body.identifier.value

    @property
    def token(self) -> str:
        return self.challb.chall.encode("token")

    def validation(self) -> str:
        """Key authorization for HTTP-01, its SHA-256 digest for DNS-01."""
        return self.challb.chall.validation(self.account_key)

    @property
    def status(self) -> str:
        return self.challb.status.name

    @property
    def error(self) -> str:
        if self.challb.error:
            return str(self.challb.error)
        return ""

    def trigger(self) -> None:
        """Tell the CA the challenge is ready to be validated."""
        response = self.challb.chall.response(self.account_key)
        resource = self.client.answer_challenge(self.challb, response)
        if resource is not None and getattr(resource, "body", None) is not None:
            self.challb = resource.body

    def update(self) -> None:
        """Re-fetch the authorization and pick up this challenge's new state."""
        self.authzr, _ = self.client.poll(self.authzr)
        for challb in self.authzr.body.challenges:
            if challb.uri == self.challb.uri:
                self.challb = challb
                break
        if (self.authzr.body.status == messages.STATUS_INVALID
                and self.challb.status != messages.STATUS_INVALID):
            logger.debug("Authorization for %s is invalid", self.identifier)
            self.challb = self.challb.update(status=messages.STATUS_INVALID)


class ChallengeHandler:
    """Prepare, validate and clean up one kind of ACME challenge."""

    challenge_type = ChallengeType.DNS_01
    max_attempts = 60
    poll_interval = 3

    def prepare(self, domain: str, challenge: AcmeChallenge, deadline: Optional[Deadline] = None) -> None:
        raise NotImplementedError

    def validate(self, challenge: AcmeChallenge, deadline: Optional[Deadline] = None) -> ChallengeOutcome:
        """Trigger the challenge and poll until VALID, INVALID or out of attempts."""
        deadline = deadline or Deadline.none()
        label = self.challenge_type.value.upper()
        logger.info("Triggering %s challenge validation", label)
        challenge.trigger()

        attempts = 0
        while challenge.status != ChallengeStatus.VALID and attempts < self.max_attempts:
            if challenge.status == ChallengeStatus.INVALID:
                break
            if not deadline.sleep(self.poll_interval):
                deadline.check()
                break
            challenge.update()
            attempts += 1
            logger.debug(
                "Challenge status: %s (attempt %d/%d)",
                challenge.status, attempts, self.max_attempts,
            )

        if challenge.status == ChallengeStatus.VALID:
            logger.info("%s challenge validated successfully", label)
            return ChallengeOutcome(
                success=True, challenge_type=self.challenge_type.value,
                status=ChallengeStatus.VALID, attempts=attempts,
            )
        if challenge.status == ChallengeStatus.INVALID:
            error = challenge.error or "Unknown error"
            logger.error("%s challenge validation failed: %s", label, error)
            return ChallengeOutcome(
                success=False, challenge_type=self.challenge_type.value,
                status=ChallengeStatus.INVALID, error=error, attempts=attempts,
            )
        logger.error("%s challenge validation timeout after %d attempt(s)", label, attempts)
        return ChallengeOutcome(
            success=False, challenge_type=self.challenge_type.value,
            status=challenge.status, error=f"{label} challenge validation timeout",
            attempts=attempts, timed_out=True,
        )

    def cleanup(self, domain: str, challenge: AcmeChallenge) -> None:
        """Remove whatever prepare() created. Must not raise."""
        raise NotImplementedError
