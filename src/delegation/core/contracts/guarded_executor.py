"""
Guarded execution of authorized call batches.

The delegation core decides whether a batch is authorized; the executor in
this module performs the calls. ``GuardedExecutor`` is the interface the
core depends on; ``BatchExecutor`` is the default implementation that runs
calls against a ``CodeRegistry`` of deployed code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from eth_abi import decode as abi_decode, encode as abi_encode
from eth_abi.exceptions import DecodingError

from ..constants import BATCH_MODE, BATCH_WITH_OP_DATA_MODE, ZERO_KEY_HASH
from ..crypto_utils import normalize_address
from ..delegation_exceptions import (
    CallReverted,
    DelegationError,
    Unauthorized,
    UnsupportedExecutionMode,
)

if TYPE_CHECKING:
    from .delegation import Delegation

logger = logging.getLogger(__name__)

CALLS_ABI_TYPE = "(address,uint256,bytes)[]"

# Execution mode ids, selected by the first 10 bytes of the mode word.
MODE_ID_UNSUPPORTED = 0
MODE_ID_BATCH = 1
MODE_ID_BATCH_WITH_OP_DATA = 2


@dataclass(frozen=True)
class Call:
    """A single call in an authorized batch."""

    target: str
    value: int = 0
    data: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "target", normalize_address(self.target))
        object.__setattr__(self, "data", bytes(self.data))
        if self.value < 0:
            raise ValueError("Call value must be non-negative")


@dataclass
class CallContext:
    """What a piece of code sees when it is invoked."""

    account: "Delegation"
    sender: str
    data: bytes
    value: int = 0
    delegate_call: bool = False


Code = Callable[[CallContext], bytes]


@dataclass
class CodeRegistry:
    """Code deployed at addresses. Addresses without code behave as EOAs."""

    code: Dict[str, Code] = field(default_factory=dict)

    def deploy(self, address: str, code: Code) -> str:
        address = normalize_address(address)
        self.code[address] = code
        return address

    def get(self, address: str) -> Optional[Code]:
        return self.code.get(normalize_address(address))


def invoke(code: Code, ctx: CallContext) -> bytes:
    """
    Run deployed code.

    Delegation errors raised by the code (including a nested ``CallReverted``)
    pass through unchanged.

    Raises:
        CallReverted: If the code fails with any other exception
    """
    try:
        return code(ctx)
    except DelegationError:
        raise
    except Exception as exc:
        raise CallReverted(b"", message=f"{type(exc).__name__}: {exc}") from exc


class GuardedExecutor(Protocol):
    """Interface of the component that performs authorized batches."""

    def execute(
        self,
        account: "Delegation",
        mode: bytes,
        calls: Sequence[Call],
        key_hash: bytes,
    ) -> List[bytes]:
        ...

    def supports_execution_mode(self, mode: bytes) -> bool:
        ...


def execution_mode_id(mode: bytes) -> int:
    if len(mode) != 32:
        return MODE_ID_UNSUPPORTED
    if mode[:10] == BATCH_MODE[:10]:
        return MODE_ID_BATCH
    if mode[:10] == BATCH_WITH_OP_DATA_MODE[:10]:
        return MODE_ID_BATCH_WITH_OP_DATA
    return MODE_ID_UNSUPPORTED


def encode_execution_data(calls: Sequence[Call], op_data: Optional[bytes] = None) -> bytes:
    """Encode ``(calls)`` or, when op data is given, ``(calls, op_data)``."""
    tuples = [(c.target, c.value, c.data) for c in calls]
    if op_data is None:
        return abi_encode([CALLS_ABI_TYPE], [tuples])
    return abi_encode([CALLS_ABI_TYPE, "bytes"], [tuples, bytes(op_data)])


def decode_execution_data(mode: bytes, execution_data: bytes) -> Tuple[List[Call], bytes]:
    """
    Decode execution data for a batch mode.

    Raises:
        UnsupportedExecutionMode: If the mode is not a batch mode or the
            payload does not decode under it
    """
    mode_id = execution_mode_id(mode)
    try:
        if mode_id == MODE_ID_BATCH:
            (raw_calls,) = abi_decode([CALLS_ABI_TYPE], execution_data)
            op_data = b""
        elif mode_id == MODE_ID_BATCH_WITH_OP_DATA:
            raw_calls, op_data = abi_decode([CALLS_ABI_TYPE, "bytes"], execution_data)
        else:
            raise UnsupportedExecutionMode(details={"mode": mode.hex()})
    except (DecodingError, ValueError, OverflowError) as exc:
        raise UnsupportedExecutionMode(
            f"Execution data does not decode: {exc}",
            details={"mode": mode.hex()},
        ) from exc
    return [Call(target, value, data) for target, value, data in raw_calls], op_data


class BatchExecutor:
    """
    Default guarded executor.

    Calls back into the account itself are only allowed for the root key
    (zero key hash) and super-admin keys.
    """

    def __init__(self, registry: Optional[CodeRegistry] = None) -> None:
        self.registry = registry if registry is not None else CodeRegistry()

    def supports_execution_mode(self, mode: bytes) -> bool:
        return execution_mode_id(mode) != MODE_ID_UNSUPPORTED

    def execute(
        self,
        account: "Delegation",
        mode: bytes,
        calls: Sequence[Call],
        key_hash: bytes,
    ) -> List[bytes]:
        if not self.supports_execution_mode(mode):
            raise UnsupportedExecutionMode(details={"mode": mode.hex()})

        results = []
        for call in calls:
            if call.target == account.address:
                if key_hash != ZERO_KEY_HASH and not account.is_super_admin(key_hash):
                    raise Unauthorized(
                        "Key may not call the account itself",
                        details={"key_hash": key_hash.hex()},
                    )
                results.append(account.dispatch_self_call(account.address, call.data))
                continue

            code = self.registry.get(call.target)
            if code is None:
                results.append(b"")
                continue
            results.append(invoke(code, CallContext(
                account=account,
                sender=account.address,
                data=call.data,
                value=call.value,
            )))

        logger.debug(
            "Batch executed",
            extra={
                "event": "executor.batch_executed",
                "account": account.address[:10],
                "calls": len(calls),
                "key_hash": key_hash.hex()[:16],
            },
        )
        return results
