"""
BLS12-381 signature verification (public keys in G1, signatures in G2).

Points use the EIP-2537 encoding: every base-field element is 64 bytes
(16 zero bytes followed by the 48-byte big-endian value).

    G1: x || y                          (128 bytes)
    G2: x.c0 || x.c1 || y.c0 || y.c1    (256 bytes)

A signature over ``digest`` is valid iff

    e(-G1, signature) * e(public_key, hash_to_G2(digest)) == 1

Any encoding problem (wrong length, non-canonical field element, point off
the curve or outside the prime-order subgroup, point at infinity) decodes
to ``None`` and fails verification.
"""

from __future__ import annotations

import hashlib
import secrets
from typing import Optional, Tuple

from py_ecc.bls.hash_to_curve import hash_to_G2
from py_ecc.optimized_bls12_381 import (
    FQ,
    FQ2,
    FQ12,
    G1,
    b,
    b2,
    curve_order,
    field_modulus,
    final_exponentiate,
    is_inf,
    is_on_curve,
    multiply,
    neg,
    normalize,
    pairing,
)

from ..constants import BLS_DST

FIELD_ELEMENT_BYTES = 64
G1_POINT_BYTES = 2 * FIELD_ELEMENT_BYTES
G2_POINT_BYTES = 4 * FIELD_ELEMENT_BYTES

NEGATED_G1_GENERATOR = neg(G1)


def _decode_field_element(data: bytes) -> Optional[int]:
    if len(data) != FIELD_ELEMENT_BYTES or any(data[:16]):
        return None
    value = int.from_bytes(data, "big")
    if value >= field_modulus:
        return None
    return value


def _encode_field_element(value: int) -> bytes:
    return int(value).to_bytes(FIELD_ELEMENT_BYTES, "big")


def _in_subgroup(point) -> bool:
    return is_inf(multiply(point, curve_order))


def decode_g1(data: bytes):
    """Decode a G1 point, or None if it is not a usable public key."""
    if len(data) != G1_POINT_BYTES:
        return None
    x = _decode_field_element(data[:64])
    y = _decode_field_element(data[64:])
    if x is None or y is None or (x == 0 and y == 0):
        return None
    point = (FQ(x), FQ(y), FQ.one())
    if not is_on_curve(point, b) or not _in_subgroup(point):
        return None
    return point


def decode_g2(data: bytes):
    """Decode a G2 point, or None if it is not a usable signature."""
    if len(data) != G2_POINT_BYTES:
        return None
    coords = [_decode_field_element(data[i:i + 64]) for i in range(0, G2_POINT_BYTES, 64)]
    if any(c is None for c in coords) or not any(coords):
        return None
    x0, x1, y0, y1 = coords
    point = (FQ2([x0, x1]), FQ2([y0, y1]), FQ2.one())
    if not is_on_curve(point, b2) or not _in_subgroup(point):
        return None
    return point


def encode_g1(point) -> bytes:
    x, y = normalize(point)
    return _encode_field_element(int(x)) + _encode_field_element(int(y))


def encode_g2(point) -> bytes:
    x, y = normalize(point)
    return b"".join(_encode_field_element(int(c)) for c in (*x.coeffs, *y.coeffs))


def hash_to_point(message: bytes):
    return hash_to_G2(message, BLS_DST, hashlib.sha256)


def verify(digest: bytes, public_key: bytes, signature: bytes) -> bool:
    pk = decode_g1(public_key)
    sig = decode_g2(signature)
    if pk is None or sig is None:
        return False
    message_point = hash_to_point(digest)
    product = (
        pairing(sig, NEGATED_G1_GENERATOR, final_exponentiate=False)
        * pairing(message_point, pk, final_exponentiate=False)
    )
    return final_exponentiate(product) == FQ12.one()


# ==================== Client helpers ====================

def generate_private_key() -> int:
    return secrets.randbelow(curve_order - 1) + 1


def public_key_bytes(private_key: int) -> bytes:
    return encode_g1(multiply(G1, private_key))


def sign(private_key: int, digest: bytes) -> bytes:
    return encode_g2(multiply(hash_to_point(digest), private_key))


def generate_keypair() -> Tuple[int, bytes]:
    private_key = generate_private_key()
    return private_key, public_key_bytes(private_key)
