"""
Delegation - authorization core for delegated smart accounts

Main Components:
- Keys: P-256, WebAuthn P-256, secp256k1 and BLS signing keys with expiry
- Signatures: wrapped-signature unwrapping and per-scheme verification
- Nonces: two-dimensional replay protection
- Digests: EIP-712 batch digests, chain-bound or multichain
- Delegate calls: allow-listed implementations and callers
"""

__version__ = "0.1.0"

__all__ = []
