"""
Two-dimensional nonce tracking.

A nonce is ``sequence_key (192 bits) || counter (64 bits)``. Every sequence
key has its own counter that starts at zero and only moves forward, so
independent flows can be signed in parallel without blocking each other.
"""

from __future__ import annotations

import logging
from typing import Dict, Tuple

from ..constants import MAX_NONCE, NONCE_SEQUENCE_BITS, NONCE_SEQUENCE_MASK
from ..delegation_exceptions import InvalidNonce, NewSequenceMustBeLarger

logger = logging.getLogger(__name__)


def split_nonce(nonce: int) -> Tuple[int, int]:
    """Split a nonce into (sequence_key, counter)."""
    if not 0 <= nonce <= MAX_NONCE:
        raise ValueError("Nonce must be a uint256")
    return nonce >> NONCE_SEQUENCE_BITS, nonce & NONCE_SEQUENCE_MASK


def join_nonce(sequence_key: int, counter: int) -> int:
    return (sequence_key << NONCE_SEQUENCE_BITS) | (counter & NONCE_SEQUENCE_MASK)


class NonceSequencer:
    """
    Track nonce counters per sequence key.

    Each sequence key has a counter starting at 0. Authorized execution must
    consume exactly the current counter; admins may jump a counter forward
    to invalidate every nonce below the new value.
    """

    def __init__(self) -> None:
        self.counters: Dict[int, int] = {}

    def get(self, sequence_key: int) -> int:
        """
        Get current counter for a sequence key

        Args:
            sequence_key: 192-bit sequence key

        Returns:
            int: Next counter value to be consumed (0 if never used)
        """
        return self.counters.get(sequence_key, 0)

    def invalidate(self, new_nonce: int) -> int:
        """
        Move a sequence forward, invalidating every lower counter.

        Args:
            new_nonce: Full nonce whose counter becomes the stored value

        Returns:
            int: The accepted nonce

        Raises:
            NewSequenceMustBeLarger: If the counter does not strictly increase
        """
        sequence_key, counter = split_nonce(new_nonce)
        current = self.get(sequence_key)
        if counter <= current:
            raise NewSequenceMustBeLarger(
                f"New sequence {counter} must be larger than {current}",
                details={"sequence_key": sequence_key, "current": current, "requested": counter},
            )
        self.counters[sequence_key] = counter
        logger.info(
            "Nonce sequence invalidated",
            extra={
                "event": "nonce.invalidated",
                "sequence_key": hex(sequence_key),
                "counter": counter,
            },
        )
        return new_nonce

    def check_and_increment(self, nonce: int) -> int:
        """
        Consume a nonce, which must equal the current counter of its sequence.

        Raises:
            InvalidNonce: If the counter is not exactly the current value
        """
        sequence_key, counter = split_nonce(nonce)
        current = self.get(sequence_key)
        if counter != current:
            logger.warning(
                "Nonce rejected",
                extra={
                    "event": "nonce.rejected",
                    "sequence_key": hex(sequence_key),
                    "expected": current,
                    "actual": counter,
                },
            )
            raise InvalidNonce(
                f"Expected counter {current}, got {counter}",
                details={"sequence_key": sequence_key, "expected": current, "actual": counter},
            )
        self.counters[sequence_key] = current + 1
        return nonce
