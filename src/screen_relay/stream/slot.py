"""
Pending Slot
============

Single-slot overwrite buffer for drop-latest rendering.

The slot holds at most one item. Putting into a full slot replaces the
held item, so a slow renderer only ever has one successor waiting and
never falls behind the producer.
"""

import logging
from typing import Generic, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class PendingSlot(Generic[T]):
    """
    One-item buffer with overwrite semantics.

    Not thread-safe; owned by a single event loop.

    Attributes:
        dropped_count: Items discarded because a newer one replaced them
        total_put: Items ever put into the slot

    Example:
        slot = PendingSlot()
        slot.put(frame_a)
        slot.put(frame_b)   # frame_a discarded
        slot.take()         # -> frame_b
        slot.take()         # -> None
    """

    def __init__(self) -> None:
        self._item: Optional[T] = None
        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def occupied(self) -> bool:
        return self._item is not None

    @property
    def dropped_count(self) -> int:
        return self._dropped_count

    @property
    def total_put(self) -> int:
        return self._total_put

    def put(self, item: T) -> Optional[T]:
        """
        Store item, replacing any pending one.

        Returns:
            The discarded item, or None if the slot was empty.
        """
        self._total_put += 1
        discarded = self._item
        self._item = item
        if discarded is not None:
            self._dropped_count += 1
        return discarded

    def take(self) -> Optional[T]:
        """Remove and return the pending item, if any."""
        item = self._item
        self._item = None
        return item

    def clear(self) -> bool:
        """
        Empty the slot without counting a drop.

        Returns:
            True if an item was removed.
        """
        had_item = self._item is not None
        self._item = None
        return had_item

    def metrics(self) -> dict:
        return {
            "occupied": self.occupied,
            "dropped_count": self._dropped_count,
            "total_put": self._total_put,
        }
