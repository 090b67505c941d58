"""ACME challenge handlers."""

from autocert.challenge.base import AcmeChallenge, ChallengeHandler, ChallengeOutcome, ChallengeStatus
from autocert.challenge.dns01 import Dns01ChallengeHandler
from autocert.challenge.http01 import Http01ChallengeHandler
from autocert.challenge.registry import ChallengeHandlerRegistry

__all__ = [
    "AcmeChallenge", "ChallengeHandler", "ChallengeHandlerRegistry", "ChallengeOutcome",
    "ChallengeStatus", "Dns01ChallengeHandler", "Http01ChallengeHandler",
]
