"""Events emitted by a delegation account."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict


@dataclass(frozen=True)
class DelegationEvent:
    timestamp: float = field(default_factory=time.time, compare=False, kw_only=True)

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for k, v in data.items():
            if isinstance(v, bytes):
                data[k] = "0x" + v.hex()
        data["event"] = self.name
        return data


@dataclass(frozen=True)
class LabelSet(DelegationEvent):
    label: str


@dataclass(frozen=True)
class Authorized(DelegationEvent):
    key_hash: bytes
    expiry: int
    key_type: int
    is_super_admin: bool
    public_key: bytes


@dataclass(frozen=True)
class Revoked(DelegationEvent):
    key_hash: bytes


@dataclass(frozen=True)
class ImplementationApprovalSet(DelegationEvent):
    implementation: str
    is_approved: bool


@dataclass(frozen=True)
class ImplementationCallerApprovalSet(DelegationEvent):
    implementation: str
    caller: str
    is_approved: bool


@dataclass(frozen=True)
class SignatureCheckerApprovalSet(DelegationEvent):
    key_hash: bytes
    checker: str
    is_approved: bool


@dataclass(frozen=True)
class NonceInvalidated(DelegationEvent):
    nonce: int


@dataclass(frozen=True)
class ProxyDelegationInitializationRequested(DelegationEvent):
    account: str
