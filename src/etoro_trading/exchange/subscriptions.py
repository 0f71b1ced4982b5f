"""
Subscription bookkeeping for the WebSocket session.

Holds the topics the caller wants, independent of whether a socket is
currently open, so they can be replayed after a reconnect.
"""

from typing import Iterable, List, Set


class SubscriptionTracker:
    """Set of topic strings (e.g. "instrument:1001", "private")."""

    def __init__(self):
        self._topics: Set[str] = set()

    def add(self, topics: Iterable[str]) -> None:
        self._topics.update(topics)

    def remove(self, topics: Iterable[str]) -> None:
        self._topics.difference_update(topics)

    def has(self, topic: str) -> bool:
        return topic in self._topics

    def get_all(self) -> List[str]:
        """Return the topics sorted, for stable Subscribe frames."""
        return sorted(self._topics)

    def clear(self) -> None:
        self._topics.clear()

    @property
    def size(self) -> int:
        return len(self._topics)

    def __contains__(self, topic: str) -> bool:
        return topic in self._topics

    def __len__(self) -> int:
        return len(self._topics)
