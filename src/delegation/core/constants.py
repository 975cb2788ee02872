"""
Protocol constants for the delegation account.

These values are part of the wire/digest format and must not be changed
without coordinating with every signer.
"""

from __future__ import annotations

# Maximum number of members in any enumerable set (key hashes, approved
# implementations, approved callers, signature checkers).
MAX_SET_SIZE = 512

# Identifier returned for the implicit root key (the account's own EOA key).
ZERO_KEY_HASH = b"\x00" * 32

# Nonce layout: uint192 sequence key || uint64 counter.
NONCE_SEQUENCE_BITS = 64
NONCE_SEQUENCE_MASK = (1 << NONCE_SEQUENCE_BITS) - 1
MAX_NONCE = (1 << 256) - 1

# Top 16 bits of a nonce that opt the signature into the chain-agnostic domain.
MULTICHAIN_NONCE_PREFIX = 0xC1D0
MULTICHAIN_PREFIX_SHIFT = 240

# Key record tail widths (bytes).
KEY_EXPIRY_BYTES = 5
KEY_TYPE_BYTES = 1
KEY_SUPER_ADMIN_BYTES = 1
KEY_TAIL_BYTES = KEY_EXPIRY_BYTES + KEY_TYPE_BYTES + KEY_SUPER_ADMIN_BYTES
MAX_KEY_EXPIRY = (1 << (8 * KEY_EXPIRY_BYTES)) - 1

# Wrapped signature tail: key hash (32 bytes) + prehash flag (1 byte).
WRAPPED_SIGNATURE_TAIL_BYTES = 33

# Execution modes (ERC-7821 style 32-byte mode words).
DELEGATE_CALL_MODE_TAG = 0xFF
DELEGATE_CALL_MODE = bytes([DELEGATE_CALL_MODE_TAG]) + b"\x00" * 31
BATCH_MODE = bytes.fromhex("01") + b"\x00" * 31
BATCH_WITH_OP_DATA_MODE = bytes.fromhex("01000000000078210001") + b"\x00" * 22

# Delegate-call payload: target address (20 bytes) || calldata.
ADDRESS_BYTES = 20

# Minimum length of op data (the leading nonce word).
OP_DATA_NONCE_BYTES = 32

# ERC-1271 return values.
ERC1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")
ERC1271_INVALID_VALUE = bytes.fromhex("ffffffff")

# EIP-712 type strings.
EIP712_PREFIX = b"\x19\x01"
CALL_TYPE = "Call(address target,uint256 value,bytes data)"
EXECUTE_TYPE = "Execute(bool multichain,Call[] calls,uint256 nonce)" + CALL_TYPE
EIP712_DOMAIN_TYPE = (
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
EIP712_DOMAIN_TYPE_SANS_CHAIN_ID = (
    "EIP712Domain(string name,string version,address verifyingContract)"
)

# BLS hash-to-curve domain separation tag (EIP-2537 / RFC 9380 NUL suite).
BLS_DST = b"BLS_SIG_BLS12381G2_XMD:SHA-256_SSWU_RO_NUL_"
