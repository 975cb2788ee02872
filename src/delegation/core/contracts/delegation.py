"""
Delegation account.

An externally owned account delegates its code to this object, which then:
- Stores additional signing keys (P-256, WebAuthn P-256, secp256k1, BLS)
- Authorizes call batches signed by any stored key
- Protects against replay with per-sequence-key nonces
- Lets approved implementations run in the account's context (delegate call)
- Answers ERC-1271 signature checks for super-admin or checker-approved keys

Authorized batches are handed to a guarded executor, which performs the
calls. Every state-changing entry point is atomic: on any exception the
account state is restored to what it was before the call.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from eth_abi import encode as abi_encode

from ..config import DelegationConfig
from ..constants import (
    ADDRESS_BYTES,
    DELEGATE_CALL_MODE_TAG,
    ERC1271_INVALID_VALUE,
    ERC1271_MAGIC_VALUE,
    NONCE_SEQUENCE_BITS,
    OP_DATA_NONCE_BYTES,
    ZERO_KEY_HASH,
)
from ..crypto_utils import bytes_to_address, normalize_address
from ..delegation_exceptions import KeyDoesNotExist, OpDataTooShort, Unauthorized
from ..typed_signing import TypedDataDomain, compute_digest
from .events import (
    Authorized,
    DelegationEvent,
    ImplementationApprovalSet,
    ImplementationCallerApprovalSet,
    LabelSet,
    NonceInvalidated,
    ProxyDelegationInitializationRequested,
    Revoked,
    SignatureCheckerApprovalSet,
)
from .guarded_executor import (
    BatchExecutor,
    Call,
    CallContext,
    CodeRegistry,
    GuardedExecutor,
    decode_execution_data,
    invoke,
)
from .implementations import ImplementationRegistry
from .keys import Key, KeyStore, hash_key
from .nonces import NonceSequencer, join_nonce
from .self_calls import decode_self_call
from .signature_verifier import SignatureVerifier

logger = logging.getLogger(__name__)


class Delegation:
    """Authorization core of a delegated smart account."""

    def __init__(
        self,
        address: str,
        executor: Optional[GuardedExecutor] = None,
        code_registry: Optional[CodeRegistry] = None,
        config: Optional[DelegationConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.address = normalize_address(address)
        self.config = config or DelegationConfig()
        self.entry_point = normalize_address(self.config.entry_point)
        self.code_registry = code_registry if code_registry is not None else CodeRegistry()
        self.executor: GuardedExecutor = (
            executor if executor is not None else BatchExecutor(self.code_registry)
        )

        self.key_store = KeyStore()
        self.nonces = NonceSequencer()
        self.implementations = ImplementationRegistry()
        self.clock = clock
        self.verifier = SignatureVerifier(self.key_store, self.address, clock)

        self._label = ""
        self.proxy_delegation_initialization_requested = False
        self.events: List[DelegationEvent] = []

    # ==================== Admin Functions (self only) ====================

    def set_label(self, caller: str, label: str) -> None:
        self._require_self(caller)
        self._label = label
        self._emit(LabelSet(label=label))

    def authorize(self, caller: str, key: Key) -> bytes:
        """
        Authorize a key, or update expiry / super-admin flag of an existing one.

        Args:
            caller: Must be the account itself
            key: Key to store

        Returns:
            The key hash
        """
        self._require_self(caller)
        with self._atomic():
            key_hash = self.key_store.authorize(key)
            self._emit(Authorized(
                key_hash=key_hash,
                expiry=key.expiry,
                key_type=int(key.key_type),
                is_super_admin=key.is_super_admin,
                public_key=key.public_key,
            ))
        return key_hash

    def revoke(self, caller: str, key_hash: bytes) -> None:
        self._require_self(caller)
        with self._atomic():
            self.key_store.revoke(key_hash)
            self._emit(Revoked(key_hash=key_hash))

    def set_implementation_approval(self, caller: str, implementation: str, approved: bool) -> None:
        self._require_self(caller)
        with self._atomic():
            self.implementations.set_approval(implementation, approved)
            self._emit(ImplementationApprovalSet(
                implementation=normalize_address(implementation),
                is_approved=approved,
            ))

    def set_implementation_caller_approval(
        self,
        caller: str,
        implementation: str,
        approved_caller: str,
        approved: bool,
    ) -> None:
        self._require_self(caller)
        with self._atomic():
            self.implementations.set_caller_approval(implementation, approved_caller, approved)
            self._emit(ImplementationCallerApprovalSet(
                implementation=normalize_address(implementation),
                caller=normalize_address(approved_caller),
                is_approved=approved,
            ))

    def set_signature_checker_approval(
        self,
        caller: str,
        key_hash: bytes,
        checker: str,
        approved: bool,
    ) -> None:
        self._require_self(caller)
        with self._atomic():
            self.key_store.set_checker_approval(key_hash, checker, approved)
            self._emit(SignatureCheckerApprovalSet(
                key_hash=key_hash,
                checker=normalize_address(checker),
                is_approved=approved,
            ))

    def invalidate_nonce(self, caller: str, nonce: int) -> None:
        """Invalidate every nonce of the sequence below ``nonce``."""
        self._require_self(caller)
        with self._atomic():
            self.nonces.invalidate(nonce)
            self._emit(NonceInvalidated(nonce=nonce))

    # ==================== Views ====================

    def label(self) -> str:
        return self._label

    def get_nonce(self, sequence_key: int) -> int:
        """Next nonce of a sequence: ``sequence_key << 64 | counter``."""
        if not 0 <= sequence_key < 1 << (256 - NONCE_SEQUENCE_BITS):
            raise ValueError("Sequence key must be a uint192")
        return join_nonce(sequence_key, self.nonces.get(sequence_key))

    def key_count(self) -> int:
        return self.key_store.count()

    def key_at(self, index: int) -> Key:
        return self.key_store.at(index)

    def get_key(self, key_hash: bytes) -> Key:
        return self.key_store.get(key_hash)

    def get_keys(self) -> Tuple[List[Key], List[bytes]]:
        return self.key_store.keys()

    @staticmethod
    def hash_key(key: Key) -> bytes:
        return hash_key(key)

    def is_super_admin(self, key_hash: bytes) -> bool:
        return self.key_store.is_super_admin(key_hash)

    def approved_implementations(self) -> List[str]:
        return self.implementations.approved_implementations()

    def approved_implementation_callers(self, implementation: str) -> List[str]:
        return self.implementations.approved_callers(implementation)

    def approved_signature_checkers(self, key_hash: bytes) -> List[str]:
        return self.key_store.checkers(key_hash)

    def eip712_domain(self) -> TypedDataDomain:
        return TypedDataDomain(
            name=self.config.domain_name,
            version=self.config.domain_version,
            chain_id=self.config.chain_id,
            verifying_contract=self.address,
        )

    def compute_digest(self, calls: Sequence[Call], nonce: int) -> bytes:
        return compute_digest(self.eip712_domain(), calls, nonce)

    def unwrap_and_validate_signature(self, digest: bytes, signature: bytes) -> Tuple[bool, bytes]:
        return self.verifier.unwrap_and_validate(digest, signature)

    def supports_execution_mode(self, mode: bytes) -> bool:
        mode = bytes(mode)
        if mode[:1] == bytes([DELEGATE_CALL_MODE_TAG]):
            return True
        return self.executor.supports_execution_mode(mode)

    # ==================== ERC-1271 ====================

    def is_valid_signature(self, caller: str, digest: bytes, signature: bytes) -> bytes:
        """
        ERC-1271 signature check on behalf of ``caller``.

        Non-root keys are only honored if they are super admins or ``caller``
        is one of the key's approved signature checkers, so a session key
        cannot sign approvals or permits for arbitrary third parties.

        Returns:
            ERC1271_MAGIC_VALUE if accepted, ERC1271_INVALID_VALUE otherwise
        """
        try:
            is_valid, key_hash = self.unwrap_and_validate_signature(digest, signature)
        except KeyDoesNotExist:
            return ERC1271_INVALID_VALUE

        if is_valid and key_hash != ZERO_KEY_HASH:
            if not self.is_super_admin(key_hash) and not self.key_store.is_checker(key_hash, caller):
                logger.info(
                    "ERC-1271 check rejected for non-admin key",
                    extra={
                        "event": "erc1271.checker_not_approved",
                        "key_hash": key_hash.hex()[:16],
                        "caller": caller[:10],
                    },
                )
                is_valid = False

        return ERC1271_MAGIC_VALUE if is_valid else ERC1271_INVALID_VALUE

    # ==================== Execution ====================

    def execute(self, caller: str, mode: bytes, execution_data: bytes) -> Union[bytes, List[bytes]]:
        """
        Authorize and dispatch an execution request.

        Args:
            caller: Immediate caller (account, entry point, or any relayer)
            mode: 32-byte execution mode; leading 0xff selects delegate call
            execution_data: ``target || calldata`` for delegate calls, the ABI
                encoded ``(calls[, op_data])`` otherwise

        Returns:
            Callee return data for delegate calls, per-call results otherwise

        Raises:
            Unauthorized: If the caller, signature or delegate-call gate fails
            OpDataTooShort: If op data cannot hold a nonce
            InvalidNonce: If the nonce is not the next one of its sequence
            CallReverted: If invoked code fails
        """
        caller = normalize_address(caller)
        mode = bytes(mode)
        execution_data = bytes(execution_data)

        with self._atomic():
            if mode[:1] == bytes([DELEGATE_CALL_MODE_TAG]):
                return self._delegate_call(caller, execution_data)

            calls, op_data = decode_execution_data(mode, execution_data)
            key_hash = self._authorize_batch(caller, calls, op_data)
            results = self.executor.execute(self, mode, calls, key_hash)
            self._request_proxy_delegation_initialization()

        logger.info(
            "Batch authorized and executed",
            extra={
                "event": "delegation.executed",
                "account": self.address[:10],
                "caller": caller[:10],
                "calls": len(calls),
                "key_hash": key_hash.hex()[:16],
            },
        )
        return results

    def dispatch_self_call(self, caller: str, data: bytes) -> bytes:
        """Run a self-only function encoded as calldata (see ``self_calls``)."""
        self._require_self(caller)
        name, args = decode_self_call(data)
        if name == "authorize":
            return abi_encode(["bytes32"], [self.authorize(self.address, *args)])
        handlers: Dict[str, Callable[..., Any]] = {
            "revoke": self.revoke,
            "setLabel": self.set_label,
            "setImplementationApproval": self.set_implementation_approval,
            "setImplementationCallerApproval": self.set_implementation_caller_approval,
            "setSignatureCheckerApproval": self.set_signature_checker_approval,
            "invalidateNonce": self.invalidate_nonce,
        }
        handlers[name](self.address, *args)
        return b""

    def _authorize_batch(self, caller: str, calls: Sequence[Call], op_data: bytes) -> bytes:
        """Resolve the key authorizing a batch, consuming its nonce if signed."""
        if caller == self.entry_point:
            if len(op_data) < OP_DATA_NONCE_BYTES:
                raise OpDataTooShort(details={"length": len(op_data)})
            return self._consume_and_verify(calls, op_data)

        if not op_data and caller == self.address:
            return ZERO_KEY_HASH

        if len(op_data) < OP_DATA_NONCE_BYTES:
            raise OpDataTooShort(details={"length": len(op_data)})
        return self._consume_and_verify(calls, op_data)

    def _consume_and_verify(self, calls: Sequence[Call], op_data: bytes) -> bytes:
        nonce = int.from_bytes(op_data[:OP_DATA_NONCE_BYTES], "big")
        self.nonces.check_and_increment(nonce)
        self._emit(NonceInvalidated(nonce=nonce))

        digest = self.compute_digest(calls, nonce)
        is_valid, key_hash = self.unwrap_and_validate_signature(
            digest, op_data[OP_DATA_NONCE_BYTES:]
        )
        if not is_valid:
            logger.warning(
                "Batch signature rejected",
                extra={
                    "event": "delegation.signature_rejected",
                    "account": self.address[:10],
                    "key_hash": key_hash.hex()[:16],
                },
            )
            raise Unauthorized("Invalid signature", details={"key_hash": key_hash.hex()})
        return key_hash

    def _delegate_call(self, caller: str, execution_data: bytes) -> bytes:
        if len(execution_data) < ADDRESS_BYTES:
            raise Unauthorized("Delegate call payload has no target")
        target = bytes_to_address(execution_data[:ADDRESS_BYTES])
        if not self.implementations.is_delegate_authorized(target, caller, self.address):
            logger.warning(
                "Delegate call rejected",
                extra={
                    "event": "delegation.delegate_call_rejected",
                    "account": self.address[:10],
                    "implementation": target[:10],
                    "caller": caller[:10],
                },
            )
            raise Unauthorized(
                "Delegate call not authorized",
                details={"implementation": target, "caller": caller},
            )

        code = self.code_registry.get(target)
        if code is None:
            return b""
        # Approved code runs with the account's full authority and may
        # re-enter execute(); only the allow-lists stand in the way.
        return invoke(code, CallContext(
            account=self,
            sender=caller,
            data=execution_data[ADDRESS_BYTES:],
            delegate_call=True,
        ))

    def _request_proxy_delegation_initialization(self) -> None:
        if self.proxy_delegation_initialization_requested:
            return
        self.proxy_delegation_initialization_requested = True
        self._emit(ProxyDelegationInitializationRequested(account=self.address))

    # ==================== State ====================

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of all mutable account state."""
        return {
            "key_store": copy.deepcopy(vars(self.key_store)),
            "nonces": copy.deepcopy(vars(self.nonces)),
            "implementations": copy.deepcopy(vars(self.implementations)),
            "label": self._label,
            "proxy_delegation_initialization_requested": self.proxy_delegation_initialization_requested,
            "event_count": len(self.events),
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        for name in ("key_store", "nonces", "implementations"):
            state = vars(getattr(self, name))
            state.clear()
            state.update(copy.deepcopy(snapshot[name]))
        self._label = snapshot["label"]
        self.proxy_delegation_initialization_requested = snapshot[
            "proxy_delegation_initialization_requested"
        ]
        del self.events[snapshot["event_count"]:]

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        saved = self.snapshot()
        try:
            yield
        except BaseException:
            self.restore(saved)
            raise

    # ==================== Helpers ====================

    def _emit(self, event: DelegationEvent) -> None:
        event = dataclasses.replace(event, timestamp=self.clock())
        self.events.append(event)
        logger.info(
            "Delegation event",
            extra={"account": self.address[:10], **event.to_dict()},
        )

    def _require_self(self, caller: str) -> None:
        if normalize_address(caller) != self.address:
            raise Unauthorized("Caller is not the account", details={"caller": caller})
