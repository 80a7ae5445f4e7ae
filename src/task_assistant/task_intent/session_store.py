"""In-memory per-user session store."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TypeVar

from .interfaces import SessionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InMemorySessionStore(SessionStore[T]):
    """
    Dict-backed session store keyed by user id.

    Entries are not dropped on read. Callers decide what an expired entry
    means (for example a timeout notice) through is_expired().
    """

    def __init__(
        self,
        timeout_seconds: float,
        timestamp_of: Callable[[T], datetime],
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Initialize the store.

        Args:
            timeout_seconds: Idle time after which an entry is stale
            timestamp_of: Returns the last-activity time of an entry
            clock: Source of the current time
        """
        self._entries: dict[str, T] = {}
        self._timeout = timedelta(seconds=timeout_seconds)
        self._timestamp_of = timestamp_of
        self._clock = clock

    def get(self, user_id: str) -> T | None:
        return self._entries.get(user_id)

    def set(self, user_id: str, value: T) -> None:
        self._entries[user_id] = value

    def delete(self, user_id: str) -> T | None:
        return self._entries.pop(user_id, None)

    def is_expired(self, value: T) -> bool:
        return self._clock() - self._timestamp_of(value) > self._timeout

    def sweep_expired(self) -> list[str]:
        expired = [uid for uid, value in self._entries.items() if self.is_expired(value)]
        for uid in expired:
            del self._entries[uid]
        if expired:
            logger.debug(f"Swept {len(expired)} expired session(s)")
        return expired

    def now(self) -> datetime:
        return self._clock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries
