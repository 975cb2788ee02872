"""
Typed structured-data digests for authorizing call batches (EIP-712).

Signers authorize a batch by signing::

    keccak256(0x1901 || domainSeparator || hashStruct(Execute))

with ``Execute(bool multichain,Call[] calls,uint256 nonce)`` and
``Call(address target,uint256 value,bytes data)``.

Nonces whose top 16 bits equal MULTICHAIN_NONCE_PREFIX are hashed under a
domain separator without the chain id, so one signature can authorize the
same batch on every chain. All other nonces are bound to the chain.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from eth_abi import encode as abi_encode

from .constants import (
    CALL_TYPE,
    EIP712_DOMAIN_TYPE,
    EIP712_DOMAIN_TYPE_SANS_CHAIN_ID,
    EIP712_PREFIX,
    EXECUTE_TYPE,
    MAX_NONCE,
    MULTICHAIN_NONCE_PREFIX,
    MULTICHAIN_PREFIX_SHIFT,
)
from .crypto_utils import address_to_bytes, keccak256

CALL_TYPEHASH = keccak256(CALL_TYPE.encode("utf-8"))
EXECUTE_TYPEHASH = keccak256(EXECUTE_TYPE.encode("utf-8"))
DOMAIN_TYPEHASH = keccak256(EIP712_DOMAIN_TYPE.encode("utf-8"))
DOMAIN_TYPEHASH_SANS_CHAIN_ID = keccak256(EIP712_DOMAIN_TYPE_SANS_CHAIN_ID.encode("utf-8"))


@dataclass(frozen=True)
class TypedDataDomain:
    """
    EIP-712 domain of a delegation account.

    Prevents signature replay across different accounts (verifying_contract),
    implementation versions (name, version) and, unless opted out, chains.
    """
    name: str
    version: str
    chain_id: int
    verifying_contract: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }

    def separator(self, include_chain_id: bool = True) -> bytes:
        name_hash = keccak256(self.name.encode("utf-8"))
        version_hash = keccak256(self.version.encode("utf-8"))
        contract = address_to_bytes(self.verifying_contract)
        if include_chain_id:
            return keccak256(abi_encode(
                ["bytes32", "bytes32", "bytes32", "uint256", "address"],
                [DOMAIN_TYPEHASH, name_hash, version_hash, self.chain_id, contract],
            ))
        return keccak256(abi_encode(
            ["bytes32", "bytes32", "bytes32", "address"],
            [DOMAIN_TYPEHASH_SANS_CHAIN_ID, name_hash, version_hash, contract],
        ))


def is_multichain_nonce(nonce: int) -> bool:
    return nonce >> MULTICHAIN_PREFIX_SHIFT == MULTICHAIN_NONCE_PREFIX


def hash_call(call: Any) -> bytes:
    """Struct hash of one Call(target, value, data)."""
    return keccak256(abi_encode(
        ["bytes32", "address", "uint256", "bytes32"],
        [CALL_TYPEHASH, address_to_bytes(call.target), call.value, keccak256(call.data)],
    ))


def hash_calls(calls: Sequence[Any]) -> bytes:
    """Order-preserving aggregate of call struct hashes (EIP-712 array encoding)."""
    return keccak256(b"".join(hash_call(call) for call in calls))


def hash_execute(calls: Sequence[Any], nonce: int, multichain: Optional[bool] = None) -> bytes:
    if multichain is None:
        multichain = is_multichain_nonce(nonce)
    return keccak256(abi_encode(
        ["bytes32", "bool", "bytes32", "uint256"],
        [EXECUTE_TYPEHASH, multichain, hash_calls(calls), nonce],
    ))


def compute_digest(domain: TypedDataDomain, calls: Sequence[Any], nonce: int) -> bytes:
    """
    Digest a key must sign to authorize ``calls`` under ``nonce``.

    Args:
        domain: Domain of the authorizing account
        calls: Ordered batch of Call records
        nonce: Full 256-bit nonce (sequence key << 64 | counter)

    Returns:
        32-byte digest
    """
    if not 0 <= nonce <= MAX_NONCE:
        raise ValueError("Nonce must be a uint256")
    multichain = is_multichain_nonce(nonce)
    struct_hash = hash_execute(calls, nonce, multichain)
    separator = domain.separator(include_chain_id=not multichain)
    return keccak256(EIP712_PREFIX + separator + struct_hash)
