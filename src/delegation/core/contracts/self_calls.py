"""
ABI of the account's self-only functions.

Admin operations reach the account as calls it makes to itself inside an
authorized batch. Calldata is ``selector || abi.encode(args)`` where the
selector is the first 4 bytes of keccak256 of the function signature.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from eth_abi import decode as abi_decode, encode as abi_encode
from eth_abi.exceptions import DecodingError

from ..crypto_utils import keccak256
from ..delegation_exceptions import CallReverted
from .keys import Key

KEY_ABI_TYPE = "(uint40,uint8,bool,bytes)"

SELF_CALL_FUNCTIONS: Dict[str, List[str]] = {
    "authorize": [KEY_ABI_TYPE],
    "revoke": ["bytes32"],
    "setLabel": ["string"],
    "setImplementationApproval": ["address", "bool"],
    "setImplementationCallerApproval": ["address", "address", "bool"],
    "setSignatureCheckerApproval": ["bytes32", "address", "bool"],
    "invalidateNonce": ["uint256"],
}


def function_signature(name: str) -> str:
    return f"{name}({','.join(SELF_CALL_FUNCTIONS[name])})"


def function_selector(name: str) -> bytes:
    return keccak256(function_signature(name).encode("utf-8"))[:4]


SELECTORS: Dict[bytes, str] = {function_selector(name): name for name in SELF_CALL_FUNCTIONS}


def encode_key(key: Key) -> Tuple[int, int, bool, bytes]:
    return (key.expiry, int(key.key_type), key.is_super_admin, key.public_key)


def encode_self_call(name: str, *args: Any) -> bytes:
    """Build calldata for a self-only function, e.g. ``encode_self_call("revoke", key_hash)``."""
    types = SELF_CALL_FUNCTIONS[name]
    values = [encode_key(a) if isinstance(a, Key) else a for a in args]
    return function_selector(name) + abi_encode(types, values)


def decode_self_call(data: bytes) -> Tuple[str, List[Any]]:
    """
    Decode self-call calldata into (function name, arguments).

    Raises:
        CallReverted: If the selector is unknown or the arguments do not decode
    """
    name = SELECTORS.get(bytes(data[:4]))
    if name is None:
        raise CallReverted(b"", message=f"Unknown function selector 0x{bytes(data[:4]).hex()}")
    try:
        args = list(abi_decode(SELF_CALL_FUNCTIONS[name], bytes(data[4:])))
    except (DecodingError, ValueError, OverflowError) as exc:
        raise CallReverted(b"", message=f"Malformed arguments for {name}: {exc}") from exc
    if name == "authorize":
        expiry, key_type, is_super_admin, public_key = args[0]
        try:
            args[0] = Key(expiry, key_type, is_super_admin, public_key)
        except ValueError as exc:
            raise CallReverted(b"", message=f"Invalid key: {exc}") from exc
    return name, args
