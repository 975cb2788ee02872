"""
Key records and the key store.

A key is identified by ``keccak256(abi.encode(uint8 key_type,
keccak256(public_key)))``. Expiry and the super-admin flag are not part of
the identity, so re-authorizing the same (type, public key) pair updates
the stored record in place.

Stored records use a fixed tail layout::

    public_key || expiry (5 bytes, big-endian) || key_type (1) || is_super_admin (1)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Tuple

from eth_abi import encode as abi_encode

from ..constants import (
    KEY_EXPIRY_BYTES,
    KEY_TAIL_BYTES,
    MAX_KEY_EXPIRY,
    MAX_SET_SIZE,
    ZERO_KEY_HASH,
)
from ..crypto_utils import keccak256, normalize_address
from ..delegation_exceptions import KeyDoesNotExist
from .enumerable_set import EnumerableSet

logger = logging.getLogger(__name__)


class KeyType(IntEnum):
    """Supported signature schemes. Closed set."""
    P256 = 0
    WEBAUTHN_P256 = 1
    SECP256K1 = 2
    BLS = 3


@dataclass(frozen=True)
class Key:
    """An authorized signing key."""

    expiry: int
    key_type: KeyType
    is_super_admin: bool
    public_key: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "key_type", KeyType(self.key_type))
        object.__setattr__(self, "public_key", bytes(self.public_key))
        object.__setattr__(self, "is_super_admin", bool(self.is_super_admin))
        if not 0 <= self.expiry <= MAX_KEY_EXPIRY:
            raise ValueError(f"Key expiry must fit in {KEY_EXPIRY_BYTES} bytes")

    @property
    def key_hash(self) -> bytes:
        return hash_key(self)


def hash_key(key: Key) -> bytes:
    """Content-derived key identifier over (key_type, keccak256(public_key))."""
    return keccak256(
        abi_encode(["uint8", "bytes32"], [int(key.key_type), keccak256(key.public_key)])
    )


def pack_key(key: Key) -> bytes:
    return (
        key.public_key
        + key.expiry.to_bytes(KEY_EXPIRY_BYTES, "big")
        + bytes([int(key.key_type)])
        + (b"\x01" if key.is_super_admin else b"\x00")
    )


def unpack_key(record: bytes) -> Key:
    """
    Decode a packed key record.

    Raises:
        ValueError: If the record is shorter than the fixed tail or carries
            an unknown key type
    """
    if len(record) < KEY_TAIL_BYTES:
        raise ValueError(f"Key record must be at least {KEY_TAIL_BYTES} bytes")
    n = len(record) - KEY_TAIL_BYTES
    return Key(
        expiry=int.from_bytes(record[n:n + KEY_EXPIRY_BYTES], "big"),
        key_type=KeyType(record[-2]),
        is_super_admin=record[-1] != 0,
        public_key=record[:n],
    )


class KeyStore:
    """Key records keyed by key hash, with per-key signature checker sets."""

    def __init__(self, cap: int = MAX_SET_SIZE) -> None:
        self.cap = cap
        self._records: Dict[bytes, bytes] = {}
        self._key_hashes: EnumerableSet[bytes] = EnumerableSet(cap)
        self._checkers: Dict[bytes, EnumerableSet[str]] = {}

    def authorize(self, key: Key) -> bytes:
        """Insert or update a key and return its hash."""
        key_hash = hash_key(key)
        self._key_hashes.add(key_hash)
        self._records[key_hash] = pack_key(key)
        logger.debug(
            "Key stored",
            extra={
                "event": "keystore.authorized",
                "key_hash": key_hash.hex()[:16],
                "key_type": key.key_type.name,
                "super_admin": key.is_super_admin,
            },
        )
        return key_hash

    def revoke(self, key_hash: bytes) -> None:
        if not self._key_hashes.remove(key_hash):
            raise KeyDoesNotExist(details={"key_hash": key_hash.hex()})
        self._records.pop(key_hash, None)
        self._checkers.pop(key_hash, None)
        logger.debug(
            "Key removed",
            extra={"event": "keystore.revoked", "key_hash": key_hash.hex()[:16]},
        )

    def get(self, key_hash: bytes) -> Key:
        record = self._records.get(key_hash, b"")
        if not record:
            raise KeyDoesNotExist(details={"key_hash": key_hash.hex()})
        return unpack_key(record)

    def exists(self, key_hash: bytes) -> bool:
        return bool(self._records.get(key_hash))

    def count(self) -> int:
        return len(self._key_hashes)

    def at(self, index: int) -> Key:
        return self.get(self._key_hashes.at(index))

    def key_hash_at(self, index: int) -> bytes:
        return self._key_hashes.at(index)

    def keys(self) -> Tuple[List[Key], List[bytes]]:
        """All keys and their hashes, in enumeration order."""
        key_hashes = self._key_hashes.values()
        return [self.get(h) for h in key_hashes], key_hashes

    def is_super_admin(self, key_hash: bytes) -> bool:
        if key_hash == ZERO_KEY_HASH or not self.exists(key_hash):
            return False
        return self.get(key_hash).is_super_admin

    # ==================== Signature Checkers ====================

    def set_checker_approval(self, key_hash: bytes, checker: str, approved: bool) -> None:
        if not self.exists(key_hash):
            raise KeyDoesNotExist(details={"key_hash": key_hash.hex()})
        checkers = self._checkers.setdefault(key_hash, EnumerableSet(self.cap))
        checkers.update(normalize_address(checker), approved)

    def is_checker(self, key_hash: bytes, checker: str) -> bool:
        checkers = self._checkers.get(key_hash)
        return checkers is not None and normalize_address(checker) in checkers

    def checkers(self, key_hash: bytes) -> List[str]:
        checkers = self._checkers.get(key_hash)
        return checkers.values() if checkers is not None else []
