"""
Messaging provider interface.

The conversation layer produces platform-neutral ``MessageResponse``
objects; each provider converts them to its wire format and delivers them.
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from triplog.state_machine.responses import MessageResponse


class BaseMessagingProvider(ABC):
    """
    Uniform interface for replying to a chat event.

    Each implementation is responsible for:
    - converting ``MessageResponse`` to the platform payload
    - the HTTP call and its circuit breaker
    - platform limits (messages per reply, label lengths)
    """

    @abstractmethod
    async def reply(self, reply_token: str, messages: list[MessageResponse]) -> None:
        """
        Reply to the event identified by ``reply_token``.

        Reply tokens are single-use, so implementations do not retry.

        Raises:
            ExternalServiceException: delivery failed.
        """

    @abstractmethod
    def to_payload(self, message: MessageResponse) -> dict:
        """Platform payload for one message (exposed for tests and debugging)"""
