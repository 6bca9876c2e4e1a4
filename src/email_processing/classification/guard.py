import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Set, Tuple

logger = logging.getLogger(__name__)


class ClassificationGuard:
    """
    In-flight registry of messages being classified.

    One guard is shared per process. Entries are keyed by (user_id,
    message_id), matching how messages are stored, so two mailboxes that
    share a provider id never block each other. A message is held from the
    start of its classification until the result is persisted or fails, and
    no second classification of the same message may start in between.
    """

    def __init__(self):
        self._active: Set[Tuple[str, str]] = set()

    def try_acquire(self, user_id: str, message_id: str) -> bool:
        """Claim a message; False if it is already being classified."""
        key = (user_id, message_id)
        if key in self._active:
            return False
        self._active.add(key)
        return True

    def release(self, user_id: str, message_id: str) -> None:
        self._active.discard((user_id, message_id))

    def is_active(self, user_id: str, message_id: str) -> bool:
        return (user_id, message_id) in self._active

    def reset(self) -> None:
        self._active.clear()

    @property
    def active_ids(self) -> Set[Tuple[str, str]]:
        return set(self._active)

    @asynccontextmanager
    async def hold(self, user_id: str, message_id: str) -> AsyncIterator[bool]:
        """
        Hold a message for the duration of the block.

        Yields True when it was acquired, False when another classification
        already holds it; only an acquired message is released.
        """
        acquired = self.try_acquire(user_id, message_id)
        if not acquired:
            logger.debug(f"Classification already in flight for {user_id}/{message_id}")
        try:
            yield acquired
        finally:
            if acquired:
                self.release(user_id, message_id)
