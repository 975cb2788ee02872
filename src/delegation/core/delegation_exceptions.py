"""
Delegation-specific exception hierarchy.

Hard failures (structural preconditions: key existence, op data length,
nonce ordering, access control) are raised as typed exceptions. Malformed
cryptographic material is never reported through this hierarchy; the
verifiers return ``False`` instead.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class DelegationError(Exception):
    """Base exception for all delegation account errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str = "",
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        message = message or self.__class__.__name__
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Authorization Errors ====================


class Unauthorized(DelegationError):
    """Raised when a caller, signature or delegate-call gate check fails."""
    pass


class KeyDoesNotExist(DelegationError):
    """Raised on lookup or revocation of a key hash with no stored record."""
    pass


# ==================== Nonce Errors ====================


class NonceError(DelegationError):
    """Base class for replay-protection failures."""
    pass


class InvalidNonce(NonceError):
    """Raised when a nonce is not exactly the next counter of its sequence."""
    pass


class NewSequenceMustBeLarger(NonceError):
    """Raised when an admin invalidation does not move the counter forward."""
    pass


# ==================== Execution Errors ====================


class OpDataTooShort(DelegationError):
    """Raised when op data is shorter than the leading nonce word."""
    pass


class UnsupportedExecutionMode(DelegationError):
    """Raised when an execution mode word is not recognized."""
    pass


class ExceededCapacity(DelegationError):
    """Raised when inserting a new member into a full enumerable set."""
    pass


class CallReverted(DelegationError):
    """Raised when invoked code fails; carries the callee's exact failure data."""

    def __init__(self, data: bytes = b"", message: str = "", **kwargs: Any) -> None:
        super().__init__(message or f"Call reverted: 0x{bytes(data).hex()}", **kwargs)
        self.data = bytes(data)


# ==================== Configuration Errors ====================


class ConfigurationError(DelegationError):
    """Raised when delegation configuration is invalid."""
    recoverable = False


def is_recoverable_error(exc: Exception) -> bool:
    """Check if an exception represents a recoverable error.

    Args:
        exc: The exception to check

    Returns:
        True if the error is recoverable and the request can be resubmitted
    """
    if isinstance(exc, DelegationError):
        return exc.recoverable

    recoverable_types = (
        ConnectionError,
        TimeoutError,
    )
    return isinstance(exc, recoverable_types)
