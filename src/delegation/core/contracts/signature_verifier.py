"""
Signature unwrapping and multi-scheme verification.

Envelope formats:

* 64 or 65 bytes: a raw secp256k1 signature by the account's own key
  (the root key). The returned key hash is all zeros.
* otherwise: ``inner_signature || key_hash (32 bytes) || prehash (1 byte)``.
  A non-zero prehash byte means the inner signature was produced over
  ``sha256(digest)`` instead of ``digest``.

Malformed cryptographic input never raises: decoders fall back to sentinel
values that cannot verify. A well-formed envelope naming an unknown key is
a structural error and raises KeyDoesNotExist.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Tuple

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError

from ..constants import WRAPPED_SIGNATURE_TAIL_BYTES, ZERO_KEY_HASH
from ..crypto_utils import address_to_bytes, p256_verify, recover_signer, sha256
from . import bls, webauthn
from .keys import Key, KeyStore, KeyType

logger = logging.getLogger(__name__)

# Decoded value that never verifies.
SENTINEL_PAIR = (0, 0)


def wrap_signature(inner_signature: bytes, key_hash: bytes, prehash: bool = False) -> bytes:
    """Build the ``inner || key_hash || prehash`` envelope."""
    if len(key_hash) != 32:
        raise ValueError("key_hash must be 32 bytes")
    return bytes(inner_signature) + key_hash + (b"\x01" if prehash else b"\x00")


def try_decode_pair(data: bytes) -> Tuple[int, int]:
    """
    Decode the leading two 32-byte words, e.g. (r, s) or (x, y).

    Bytes past the first 64 are ignored; shorter input yields the (0, 0)
    sentinel, which never verifies.
    """
    if len(data) < 64:
        return SENTINEL_PAIR
    return int.from_bytes(data[:32], "big"), int.from_bytes(data[32:64], "big")


def try_decode_address(public_key: bytes) -> bytes:
    """Decode an ABI-encoded address; returns b"" if it is not one."""
    if len(public_key) != 32:
        return b""
    try:
        (address,) = abi_decode(["address"], public_key)
    except (DecodingError, ValueError):
        return b""
    return address_to_bytes(address)


# ==================== Per-scheme verification ====================

def verify_p256(digest: bytes, signature: bytes, key: Key) -> bool:
    r, s = try_decode_pair(signature)
    x, y = try_decode_pair(key.public_key)
    return p256_verify(digest, r, s, x, y)


def verify_webauthn_p256(digest: bytes, signature: bytes, key: Key) -> bool:
    x, y = try_decode_pair(key.public_key)
    return webauthn.verify(
        challenge=digest,
        require_user_verification=False,
        auth=webauthn.try_decode_auth(signature),
        x=x,
        y=y,
    )


def verify_secp256k1(digest: bytes, signature: bytes, key: Key) -> bool:
    expected = try_decode_address(key.public_key)
    if not expected:
        return False
    return recover_signer(digest, signature) == expected


def verify_bls(digest: bytes, signature: bytes, key: Key) -> bool:
    return bls.verify(digest, key.public_key, signature)


SCHEME_VERIFIERS: Dict[KeyType, Callable[[bytes, bytes, Key], bool]] = {
    KeyType.P256: verify_p256,
    KeyType.WEBAUTHN_P256: verify_webauthn_p256,
    KeyType.SECP256K1: verify_secp256k1,
    KeyType.BLS: verify_bls,
}


class SignatureVerifier:
    """Resolves wrapped signatures against a key store."""

    def __init__(
        self,
        key_store: KeyStore,
        account_address: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.key_store = key_store
        self.account = address_to_bytes(account_address)
        self.clock = clock

    def unwrap_and_validate(self, digest: bytes, signature: bytes) -> Tuple[bool, bytes]:
        """
        Validate a signature over ``digest``.

        Args:
            digest: 32-byte message digest
            signature: Raw root-key signature or wrapped envelope

        Returns:
            (is_valid, key_hash); key_hash is all zeros for the root key and
            for envelopes too short to carry one

        Raises:
            KeyDoesNotExist: If the envelope names a key that is not stored
        """
        signature = bytes(signature or b"")

        if len(signature) in (64, 65):
            is_valid = recover_signer(digest, signature) == self.account
            return is_valid, ZERO_KEY_HASH

        if len(signature) < WRAPPED_SIGNATURE_TAIL_BYTES:
            logger.debug(
                "Signature envelope too short",
                extra={"event": "signature.malformed", "length": len(signature)},
            )
            return False, ZERO_KEY_HASH

        n = len(signature) - WRAPPED_SIGNATURE_TAIL_BYTES
        inner = signature[:n]
        key_hash = signature[n:n + 32]
        if signature[-1] != 0:
            digest = sha256(digest)

        key = self.key_store.get(key_hash)

        if key.expiry != 0 and self.clock() > key.expiry:
            logger.info(
                "Signature rejected: key expired",
                extra={
                    "event": "signature.key_expired",
                    "key_hash": key_hash.hex()[:16],
                    "expiry": key.expiry,
                },
            )
            return False, key_hash

        is_valid = SCHEME_VERIFIERS[key.key_type](digest, inner, key)

        logger.debug(
            "Signature checked",
            extra={
                "event": "signature.checked",
                "key_hash": key_hash.hex()[:16],
                "key_type": key.key_type.name,
                "valid": is_valid,
            },
        )
        return is_valid, key_hash
