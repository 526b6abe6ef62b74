"""
Tranche slots and their ordering rule.

A booking holds up to three payments, populated strictly in order:
second requires first, third requires second.  Slots are append-only.
"""

from __future__ import annotations

from enum import Enum


class TrancheSlot(str, Enum):
    """Ordered payment slots on a booking."""

    FIRST = "first"
    SECOND = "second"
    THIRD = "third"

    @property
    def attribute(self) -> str:
        """Relationship attribute on ``Booking`` holding this slot."""
        return f"{self.value}_payment"

    @property
    def predecessor(self) -> TrancheSlot | None:
        return _PREDECESSORS[self]


_PREDECESSORS: dict[TrancheSlot, TrancheSlot | None] = {
    TrancheSlot.FIRST: None,
    TrancheSlot.SECOND: TrancheSlot.FIRST,
    TrancheSlot.THIRD: TrancheSlot.SECOND,
}


def missing_predecessor(
    slot: TrancheSlot,
    occupied: frozenset[TrancheSlot],
) -> TrancheSlot | None:
    """The slot that must be filled before ``slot``, if it is still empty."""
    predecessor = slot.predecessor
    if predecessor is not None and predecessor not in occupied:
        return predecessor
    return None
