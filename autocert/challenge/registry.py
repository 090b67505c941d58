"""Resolve challenge handlers by challenge type."""

import logging
from typing import Optional, Union

from autocert.challenge.base import ChallengeHandler
from autocert.challenge.dns01 import Dns01ChallengeHandler
from autocert.challenge.http01 import Http01ChallengeHandler
from autocert.errors import ConfigurationError
from autocert.models import ChallengeType

logger = logging.getLogger(__name__)


class ChallengeHandlerRegistry:
    """All available handlers, keyed by the challenge type they solve."""

    def __init__(self, handlers: Optional[list[ChallengeHandler]] = None):
        if handlers is None:
            handlers = [Http01ChallengeHandler(), Dns01ChallengeHandler()]
        self._handlers: dict[ChallengeType, ChallengeHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: ChallengeHandler) -> None:
        self._handlers[handler.challenge_type] = handler
        logger.debug("Registered %s handler: %s", handler.challenge_type.value, type(handler).__name__)

    def get(self, challenge_type: Union[ChallengeType, str, None] = None) -> ChallengeHandler:
        """Return the handler for an enum member or protocol string.

        ``None`` selects DNS-01. Unknown strings and types without a
        registered handler raise ConfigurationError.
        """
        resolved = ChallengeType.from_value(challenge_type)
        handler = self._handlers.get(resolved)
        if handler is None:
            raise ConfigurationError(f"No handler registered for challenge type: {resolved.value}")
        return handler

    def is_supported(self, challenge_type: Union[ChallengeType, str]) -> bool:
        try:
            return ChallengeType.from_value(challenge_type) in self._handlers
        except ConfigurationError:
            return False

    def supported_types(self) -> list[ChallengeType]:
        return list(self._handlers)
