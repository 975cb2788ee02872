"""Hashing, address and signature primitives for P-256 and secp256k1 keys."""

from __future__ import annotations

import hashlib
import re
from typing import Optional

from Crypto.Hash import keccak
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)
from eth_account import Account
from eth_keys import keys as eth_keys
from eth_keys.exceptions import BadSignature, ValidationError as EthKeysValidationError

from .constants import ADDRESS_BYTES

_P256 = ec.SECP256R1()
P256_ORDER = int("FFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551", 16)
SECP256K1_ORDER = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


# ==================== Hashing ====================

def keccak256(data: bytes) -> bytes:
    """Compute keccak256 hash (same as Ethereum)."""
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


# ==================== Addresses ====================

def is_address(value: object) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def normalize_address(address: str) -> str:
    """Return the lowercase 0x-form of an address, validating its shape."""
    if not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return address.lower()


def address_to_bytes(address: str) -> bytes:
    return bytes.fromhex(normalize_address(address)[2:])


def bytes_to_address(raw: bytes) -> str:
    if len(raw) != ADDRESS_BYTES:
        raise ValueError(f"Address must be {ADDRESS_BYTES} bytes, got {len(raw)}")
    return "0x" + raw.hex()


# ==================== P-256 ====================

def _validate_signature_range(r: int, s: int, order: int) -> None:
    """
    Ensure signature components fall within the curve order.

    Raises:
        ValueError: If either component is out of range.
    """
    if not (1 <= r < order):
        raise ValueError("Signature r component out of range.")
    if not (1 <= s < order):
        raise ValueError("Signature s component out of range.")


def is_canonical_p256_signature(r: int, s: int) -> bool:
    """True if (r, s) is in range and has low-S form."""
    try:
        _validate_signature_range(r, s, P256_ORDER)
    except ValueError:
        return False
    return s <= P256_ORDER // 2


def p256_verify(digest: bytes, r: int, s: int, x: int, y: int) -> bool:
    """
    Verify a P-256 ECDSA signature over a 32-byte digest.

    Any malformed input (out-of-range or high-S signature, point not on the
    curve, wrong digest size) returns False.
    """
    if len(digest) != 32 or not is_canonical_p256_signature(r, s):
        return False
    if not (0 < x < 2**256 and 0 < y < 2**256):
        return False
    try:
        public_key = ec.EllipticCurvePublicKey.from_encoded_point(
            _P256, b"\x04" + x.to_bytes(32, "big") + y.to_bytes(32, "big")
        )
        public_key.verify(
            encode_dss_signature(r, s), digest, ec.ECDSA(Prehashed(hashes.SHA256()))
        )
        return True
    except (InvalidSignature, ValueError):
        return False


def generate_p256_private_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(_P256)


def p256_public_key_bytes(private_key: ec.EllipticCurvePrivateKey) -> bytes:
    """Encode the public key as x (32 bytes) || y (32 bytes)."""
    numbers = private_key.public_key().public_numbers()
    return numbers.x.to_bytes(32, "big") + numbers.y.to_bytes(32, "big")


def p256_sign(private_key: ec.EllipticCurvePrivateKey, digest: bytes) -> bytes:
    """Sign a 32-byte digest, returning low-S r (32 bytes) || s (32 bytes)."""
    der_signature = private_key.sign(digest, ec.ECDSA(Prehashed(hashes.SHA256())))
    r, s = decode_dss_signature(der_signature)
    if s > P256_ORDER // 2:
        s = P256_ORDER - s
    return r.to_bytes(32, "big") + s.to_bytes(32, "big")


# ==================== secp256k1 ====================

def recover_signer(digest: bytes, signature: bytes) -> Optional[bytes]:
    """
    Recover the 20-byte signer address of a recoverable secp256k1 signature.

    Accepts 65-byte ``r || s || v`` (v in {27, 28}) and 64-byte EIP-2098
    compact ``r || vs`` signatures. Returns None when nothing can be
    recovered.
    """
    if len(digest) != 32:
        return None
    if len(signature) == 65:
        r = int.from_bytes(signature[:32], "big")
        s = int.from_bytes(signature[32:64], "big")
        v = signature[64]
    elif len(signature) == 64:
        r = int.from_bytes(signature[:32], "big")
        vs = int.from_bytes(signature[32:], "big")
        v = (vs >> 255) + 27
        s = vs & ((1 << 255) - 1)
    else:
        return None

    if v not in (27, 28):
        return None
    try:
        _validate_signature_range(r, s, SECP256K1_ORDER)
        sig = eth_keys.Signature(vrs=(v - 27, r, s))
        public_key = sig.recover_public_key_from_msg_hash(digest)
    except (BadSignature, EthKeysValidationError, ValueError):
        return None
    return public_key.to_canonical_address()


def generate_secp256k1_private_key() -> str:
    """Return a fresh secp256k1 private key as 0x-prefixed hex."""
    return "0x" + Account.create().key.hex().removeprefix("0x")


def secp256k1_address(private_key: str) -> str:
    return normalize_address(Account.from_key(private_key).address)


def secp256k1_sign(private_key: str, digest: bytes) -> bytes:
    """Sign a raw 32-byte digest, returning ``r || s || v`` (65 bytes)."""
    signed = Account.from_key(private_key).unsafe_sign_hash(digest)
    return (
        signed.r.to_bytes(32, "big")
        + signed.s.to_bytes(32, "big")
        + bytes([signed.v])
    )


def to_compact_signature(signature: bytes) -> bytes:
    """Convert a 65-byte ``r || s || v`` signature to EIP-2098 ``r || vs``."""
    if len(signature) != 65:
        raise ValueError("Expected a 65-byte signature")
    s = int.from_bytes(signature[32:64], "big")
    vs = ((signature[64] - 27) << 255) | s
    return signature[:32] + vs.to_bytes(32, "big")
