"""Shared fixtures for delegation account tests."""

from dataclasses import dataclass
from typing import Callable

import pytest
from eth_abi import encode as abi_encode

from delegation.core.config import DelegationConfig
from delegation.core.contracts import bls, webauthn
from delegation.core.contracts.delegation import Delegation
from delegation.core.contracts.guarded_executor import CodeRegistry
from delegation.core.contracts.keys import Key, KeyType, hash_key
from delegation.core.contracts.signature_verifier import wrap_signature
from delegation.core.crypto_utils import (
    generate_p256_private_key,
    generate_secp256k1_private_key,
    p256_public_key_bytes,
    p256_sign,
    secp256k1_address,
    secp256k1_sign,
    sha256,
)

ROOT_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
ENTRY_POINT_ADDRESS = "0x307af7d28afee82092aa95d35644898311ca5360"
STRANGER = "0x" + "5a" * 20
NOW = 1_700_000_000


@dataclass
class KeySigner:
    """A stored key together with the private material that signs for it."""

    key: Key
    sign_inner: Callable[[bytes], bytes]

    @property
    def key_hash(self) -> bytes:
        return hash_key(self.key)

    def sign(self, digest: bytes, prehash: bool = False) -> bytes:
        """Produce a wrapped signature over ``digest``."""
        message = sha256(digest) if prehash else digest
        return wrap_signature(self.sign_inner(message), self.key_hash, prehash)


def make_signer(key_type: KeyType, super_admin: bool = False, expiry: int = 0) -> KeySigner:
    if key_type == KeyType.P256:
        private_key = generate_p256_private_key()
        key = Key(expiry, key_type, super_admin, p256_public_key_bytes(private_key))
        return KeySigner(key, lambda d: p256_sign(private_key, d))
    if key_type == KeyType.WEBAUTHN_P256:
        private_key = generate_p256_private_key()
        key = Key(expiry, key_type, super_admin, p256_public_key_bytes(private_key))
        return KeySigner(key, lambda d: webauthn.build_assertion(private_key, d).encode())
    if key_type == KeyType.SECP256K1:
        private_key = generate_secp256k1_private_key()
        public_key = abi_encode(["address"], [secp256k1_address(private_key)])
        key = Key(expiry, key_type, super_admin, public_key)
        return KeySigner(key, lambda d: secp256k1_sign(private_key, d))
    if key_type == KeyType.BLS:
        private_key, public_key = bls.generate_keypair()
        key = Key(expiry, key_type, super_admin, public_key)
        return KeySigner(key, lambda d: bls.sign(private_key, d))
    raise ValueError(f"Unknown key type {key_type}")


class FakeClock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def signer_factory():
    return make_signer


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def account_address():
    return secp256k1_address(ROOT_PRIVATE_KEY)


@pytest.fixture
def registry():
    return CodeRegistry()


@pytest.fixture
def config():
    return DelegationConfig(chain_id=1, entry_point=ENTRY_POINT_ADDRESS)


@pytest.fixture
def delegation(account_address, registry, config, clock):
    """A fresh delegation account with no keys."""
    return Delegation(account_address, code_registry=registry, config=config, clock=clock)


@pytest.fixture
def root_sign():
    """Sign a digest with the account's own (root) key."""
    return lambda digest: secp256k1_sign(ROOT_PRIVATE_KEY, digest)
