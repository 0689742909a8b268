# =============================================================================
# HOTCOIN Python Client -- Subscription Registry
# =============================================================================

from __future__ import annotations

import threading

from .constants import PRIVATE_TOPIC_PREFIXES
from .errors import AlreadySubscribedError

# -- Topic builders ------------------------------------------------------------


def kline_topic(symbol: str, period: str) -> str:
    return f"market.{symbol}.kline.{period}"


def depth_topic(symbol: str, depth_type: str) -> str:
    return f"market.{symbol}.depth.{depth_type}"


def trade_topic(symbol: str) -> str:
    return f"market.{symbol}.trade.detail"


def ticker_topic(symbol: str) -> str:
    return f"market.{symbol}.detail"


def orders_topic(symbol: str) -> str:
    return f"orders.{symbol}"


def positions_topic(symbol: str) -> str:
    return f"positions.{symbol}"


def accounts_topic(symbol: str) -> str:
    return f"accounts.{symbol}"


def is_private_topic(topic: str) -> bool:
    """Account-scoped topics need an authenticated session."""
    return topic.split(".", 1)[0] in PRIVATE_TOPIC_PREFIXES


# -- Registry ------------------------------------------------------------------


class SubscriptionRegistry:
    """Set of active topics with its own lock.

    Holds exactly the topics for which a subscribe was sent and no
    unsubscribe or disconnect has happened since. Connection gating is
    done by the session before it touches the registry.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: dict[str, bool] = {}

    def add(self, topic: str) -> None:
        """Mark *topic* active.

        Raises:
            AlreadySubscribedError: If *topic* is already active.
        """
        with self._lock:
            if self._active.get(topic):
                raise AlreadySubscribedError(topic)
            self._active[topic] = True

    def discard(self, topic: str) -> bool:
        """Remove *topic*. Returns whether it was active."""
        with self._lock:
            return self._active.pop(topic, False)

    def clear(self) -> None:
        with self._lock:
            self._active = {}

    def topics(self) -> set[str]:
        with self._lock:
            return {topic for topic, active in self._active.items() if active}

    def __contains__(self, topic: object) -> bool:
        with self._lock:
            return topic in self._active

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)
