"""
Trusted relay for signed call batches.

Relayers collect signed intents off-chain and submit them through the entry
point, which calls each target account as the trusted caller. A failing
intent is recorded and never prevents the remaining intents from running.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from ..config import ENTRY_POINT
from ..constants import BATCH_WITH_OP_DATA_MODE
from ..crypto_utils import normalize_address
from ..delegation_exceptions import DelegationError
from .delegation import Delegation
from .guarded_executor import Call, encode_execution_data

logger = logging.getLogger(__name__)


@dataclass
class Intent:
    """A batch of calls signed by one of the account's keys."""

    account: str
    calls: List[Call]
    nonce: int
    signature: bytes = b""

    def op_data(self) -> bytes:
        return self.nonce.to_bytes(32, "big") + bytes(self.signature)

    def execution_data(self) -> bytes:
        return encode_execution_data(self.calls, self.op_data())


@dataclass
class IntentResult:
    """Result of relaying one intent."""
    success: bool
    return_data: List[bytes] = field(default_factory=list)
    error: str = ""


@dataclass
class EntryPoint:
    """Submits signed intents to delegation accounts as the trusted caller."""

    address: str = ENTRY_POINT
    accounts: Dict[str, Delegation] = field(default_factory=dict)

    total_ops_processed: int = 0
    total_ops_failed: int = 0

    def __post_init__(self) -> None:
        self.address = normalize_address(self.address)

    def register_account(self, account: Delegation) -> None:
        if account.entry_point != self.address:
            raise ValueError(
                f"Account {account.address} trusts entry point {account.entry_point}, not {self.address}"
            )
        self.accounts[account.address] = account

    def get_nonce(self, account: str, sequence_key: int = 0) -> int:
        return self._account(account).get_nonce(sequence_key)

    def handle_ops(self, intents: List[Intent]) -> List[IntentResult]:
        """
        Relay a list of intents.

        Args:
            intents: Signed intents, executed in order

        Returns:
            One result per intent
        """
        results = []
        for intent in intents:
            try:
                account = self._account(intent.account)
                return_data = account.execute(
                    self.address,
                    BATCH_WITH_OP_DATA_MODE,
                    intent.execution_data(),
                )
                results.append(IntentResult(success=True, return_data=list(return_data)))
            except (DelegationError, ValueError, OverflowError) as e:
                # ValueError/OverflowError: intent does not encode, e.g. nonce above uint256
                self.total_ops_failed += 1
                logger.warning(
                    "Intent failed",
                    extra={
                        "event": "entrypoint.intent_failed",
                        "account": str(intent.account)[:10],
                        "nonce": intent.nonce,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                results.append(IntentResult(success=False, error=type(e).__name__))

        self.total_ops_processed += len(intents)
        return results

    def get_stats(self) -> Dict[str, int]:
        return {
            "total_ops_processed": self.total_ops_processed,
            "total_ops_failed": self.total_ops_failed,
            "registered_accounts": len(self.accounts),
        }

    def _account(self, address: str) -> Delegation:
        try:
            address = normalize_address(address)
        except ValueError as exc:
            raise DelegationError(f"Invalid account address {address!r}") from exc
        account = self.accounts.get(address)
        if account is None:
            raise DelegationError(f"Account {address} not registered")
        return account
