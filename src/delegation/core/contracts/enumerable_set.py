"""
Capped enumerable set.

Members are kept in an index list plus a position map, so membership,
insertion and removal are O(1) and enumeration order is deterministic:
insertion order, with removal moving the last member into the freed slot.
"""

from __future__ import annotations

from typing import Dict, Generic, Hashable, Iterator, List, TypeVar

from ..constants import MAX_SET_SIZE
from ..delegation_exceptions import ExceededCapacity

T = TypeVar("T", bound=Hashable)


class EnumerableSet(Generic[T]):
    """Ordered set with a hard member cap."""

    def __init__(self, cap: int = MAX_SET_SIZE) -> None:
        self.cap = cap
        self._values: List[T] = []
        self._positions: Dict[T, int] = {}

    def add(self, value: T) -> bool:
        """
        Add a member.

        Returns:
            True if the member was inserted, False if it was already present

        Raises:
            ExceededCapacity: If the set is full and the member is new
        """
        if value in self._positions:
            return False
        if len(self._values) >= self.cap:
            raise ExceededCapacity(
                f"Set is full ({self.cap} members)",
                details={"cap": self.cap},
            )
        self._positions[value] = len(self._values)
        self._values.append(value)
        return True

    def remove(self, value: T) -> bool:
        """Remove a member. Returns False if it was not present."""
        position = self._positions.pop(value, None)
        if position is None:
            return False
        last = self._values.pop()
        if position < len(self._values):
            self._values[position] = last
            self._positions[last] = position
        return True

    def update(self, value: T, present: bool) -> bool:
        return self.add(value) if present else self.remove(value)

    def clear(self) -> None:
        self._values.clear()
        self._positions.clear()

    def contains(self, value: T) -> bool:
        return value in self._positions

    def at(self, index: int) -> T:
        if not 0 <= index < len(self._values):
            raise IndexError(f"Index {index} out of range for set of {len(self._values)}")
        return self._values[index]

    def values(self) -> List[T]:
        return list(self._values)

    def __contains__(self, value: object) -> bool:
        return value in self._positions

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._values))
