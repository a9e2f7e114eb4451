"""
Messaging Provider Abstraction Layer
"""
import threading

from triplog.domain.services.messaging.base_provider import BaseMessagingProvider
from triplog.domain.services.messaging.line_provider import LineMessagingProvider

_provider: BaseMessagingProvider | None = None
_lock = threading.Lock()


def get_messaging_provider() -> BaseMessagingProvider:
    """Shared LINE provider; used as a FastAPI dependency so tests can override it"""
    global _provider
    if _provider is None:
        with _lock:
            if _provider is None:
                _provider = LineMessagingProvider()
    return _provider


__all__ = [
    "BaseMessagingProvider",
    "LineMessagingProvider",
    "get_messaging_provider",
]
