"""
Delegation account contracts.

This module provides:
- Delegation: the account authorization core and execution dispatcher
- KeyStore / Key / KeyType: signing keys bound to the account
- SignatureVerifier: wrapped-signature verification for four key types
- NonceSequencer: per-sequence-key replay protection
- ImplementationRegistry: delegate-call allow-lists
- BatchExecutor / CodeRegistry: default guarded execution of batches
- EntryPoint: trusted relay for signed intents
"""

from .delegation import Delegation
from .entry_point import EntryPoint, Intent, IntentResult
from .enumerable_set import EnumerableSet
from .guarded_executor import (
    BatchExecutor,
    Call,
    CallContext,
    CodeRegistry,
    GuardedExecutor,
    decode_execution_data,
    encode_execution_data,
)
from .implementations import ImplementationRegistry
from .keys import Key, KeyStore, KeyType, hash_key, pack_key, unpack_key
from .nonces import NonceSequencer, join_nonce, split_nonce
from .self_calls import decode_self_call, encode_self_call
from .signature_verifier import SignatureVerifier, wrap_signature

__all__ = [
    # Account
    "Delegation",
    "EntryPoint",
    "Intent",
    "IntentResult",
    # Keys
    "Key",
    "KeyType",
    "KeyStore",
    "hash_key",
    "pack_key",
    "unpack_key",
    # Signatures
    "SignatureVerifier",
    "wrap_signature",
    # Nonces
    "NonceSequencer",
    "split_nonce",
    "join_nonce",
    # Delegate calls
    "ImplementationRegistry",
    # Execution
    "BatchExecutor",
    "Call",
    "CallContext",
    "CodeRegistry",
    "GuardedExecutor",
    "decode_execution_data",
    "encode_execution_data",
    "encode_self_call",
    "decode_self_call",
    "EnumerableSet",
]
