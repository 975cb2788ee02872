"""
WebAuthn (passkey) assertion verification over P-256.

The assertion travels as the ABI encoding of::

    (bytes authenticatorData, string clientDataJSON,
     uint256 challengeIndex, uint256 typeIndex, bytes32 r, bytes32 s)

``challengeIndex`` and ``typeIndex`` are byte offsets into clientDataJSON
where ``"challenge":"..."`` and ``"type":"webauthn.get"`` start, so the JSON
never has to be parsed.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Tuple

from cryptography.hazmat.primitives.asymmetric import ec
from eth_abi import decode as abi_decode, encode as abi_encode
from eth_abi.exceptions import DecodingError

from ..crypto_utils import p256_sign, p256_verify, sha256

AUTH_ABI_TYPE = "(bytes,string,uint256,uint256,bytes32,bytes32)"

FLAG_USER_PRESENT = 0x01
FLAG_USER_VERIFIED = 0x04
FLAG_BACKUP_ELIGIBLE = 0x08
FLAG_BACKUP_STATE = 0x10

_TYPE_FRAGMENT = b'"type":"webauthn.get"'
_CHALLENGE_PREFIX = b'"challenge":"'
_MIN_AUTHENTICATOR_DATA = 37


@dataclass(frozen=True)
class WebAuthnAuth:
    authenticator_data: bytes = b""
    client_data_json: str = ""
    challenge_index: int = 0
    type_index: int = 0
    r: int = 0
    s: int = 0

    def encode(self) -> bytes:
        return abi_encode(
            [AUTH_ABI_TYPE],
            [(
                self.authenticator_data,
                self.client_data_json,
                self.challenge_index,
                self.type_index,
                self.r.to_bytes(32, "big"),
                self.s.to_bytes(32, "big"),
            )],
        )


EMPTY_AUTH = WebAuthnAuth()


def try_decode_auth(encoded: bytes) -> WebAuthnAuth:
    """Decode an assertion; undecodable input yields the empty assertion."""
    try:
        (fields,) = abi_decode([AUTH_ABI_TYPE], encoded)
    except (DecodingError, ValueError, OverflowError):
        return EMPTY_AUTH
    authenticator_data, client_data_json, challenge_index, type_index, r, s = fields
    return WebAuthnAuth(
        authenticator_data=authenticator_data,
        client_data_json=client_data_json,
        challenge_index=challenge_index,
        type_index=type_index,
        r=int.from_bytes(r, "big"),
        s=int.from_bytes(s, "big"),
    )


def base64url(data: bytes) -> bytes:
    return base64.urlsafe_b64encode(data).rstrip(b"=")


def verify(
    challenge: bytes,
    require_user_verification: bool,
    auth: WebAuthnAuth,
    x: int,
    y: int,
) -> bool:
    """Verify a WebAuthn assertion for ``challenge`` against public key (x, y)."""
    authenticator_data = auth.authenticator_data
    if len(authenticator_data) < _MIN_AUTHENTICATOR_DATA:
        return False

    flags = authenticator_data[32]
    if not flags & FLAG_USER_PRESENT:
        return False
    if require_user_verification and not flags & FLAG_USER_VERIFIED:
        return False
    # Backup state without backup eligibility is inconsistent.
    if flags & (FLAG_BACKUP_ELIGIBLE | FLAG_BACKUP_STATE) == FLAG_BACKUP_STATE:
        return False

    client_data = auth.client_data_json.encode("utf-8")
    t = auth.type_index
    if client_data[t:t + len(_TYPE_FRAGMENT)] != _TYPE_FRAGMENT:
        return False

    encoded_challenge = base64url(challenge)
    c = auth.challenge_index
    start = c + len(_CHALLENGE_PREFIX)
    end = start + len(encoded_challenge)
    if (
        client_data[c:start] != _CHALLENGE_PREFIX
        or client_data[start:end] != encoded_challenge
        or client_data[end:end + 1] != b'"'
    ):
        return False

    message = sha256(authenticator_data + sha256(client_data))
    return p256_verify(message, auth.r, auth.s, x, y)


def build_assertion(
    private_key: ec.EllipticCurvePrivateKey,
    challenge: bytes,
    origin: str = "https://wallet.example",
    rp_id: str = "wallet.example",
    flags: int = FLAG_USER_PRESENT | FLAG_USER_VERIFIED,
    sign_count: int = 0,
) -> WebAuthnAuth:
    """Produce an assertion the way a platform authenticator would."""
    authenticator_data = (
        sha256(rp_id.encode("utf-8")) + bytes([flags]) + sign_count.to_bytes(4, "big")
    )
    client_data_json = (
        '{"type":"webauthn.get","challenge":"%s","origin":"%s","crossOrigin":false}'
        % (base64url(challenge).decode("ascii"), origin)
    )
    message = sha256(authenticator_data + sha256(client_data_json.encode("utf-8")))
    signature = p256_sign(private_key, message)
    r, s = _split_rs(signature)
    return WebAuthnAuth(
        authenticator_data=authenticator_data,
        client_data_json=client_data_json,
        challenge_index=client_data_json.index('"challenge":"'),
        type_index=client_data_json.index('"type":"webauthn.get"'),
        r=r,
        s=s,
    )


def _split_rs(signature: bytes) -> Tuple[int, int]:
    return int.from_bytes(signature[:32], "big"), int.from_bytes(signature[32:], "big")
