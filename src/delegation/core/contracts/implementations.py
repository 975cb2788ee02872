"""
Allow-list of code that may run in the account's context via delegate call.

Each approved implementation carries its own allow-list of callers. The
account itself may always trigger an approved implementation; anyone else
must be on that implementation's caller list.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from ..constants import MAX_SET_SIZE
from ..crypto_utils import normalize_address
from ..delegation_exceptions import Unauthorized
from .enumerable_set import EnumerableSet

logger = logging.getLogger(__name__)


class ImplementationRegistry:
    """Approved delegate-call targets and their approved callers."""

    def __init__(self, cap: int = MAX_SET_SIZE) -> None:
        self.cap = cap
        self._implementations: EnumerableSet[str] = EnumerableSet(cap)
        self._callers: Dict[str, EnumerableSet[str]] = {}

    def set_approval(self, target: str, approved: bool) -> None:
        target = normalize_address(target)
        self._implementations.update(target, approved)
        if not approved:
            self._callers.pop(target, None)
        logger.info(
            "Implementation approval updated",
            extra={
                "event": "implementations.approval_set",
                "implementation": target[:10],
                "approved": approved,
            },
        )

    def set_caller_approval(self, target: str, caller: str, approved: bool) -> None:
        target = normalize_address(target)
        if target not in self._implementations:
            raise Unauthorized(
                "Implementation is not approved",
                details={"implementation": target},
            )
        callers = self._callers.setdefault(target, EnumerableSet(self.cap))
        callers.update(normalize_address(caller), approved)

    def is_approved(self, target: str) -> bool:
        return normalize_address(target) in self._implementations

    def is_delegate_authorized(self, target: str, caller: str, account: str) -> bool:
        target = normalize_address(target)
        caller = normalize_address(caller)
        if target not in self._implementations:
            return False
        if caller == normalize_address(account):
            return True
        callers = self._callers.get(target)
        return callers is not None and caller in callers

    def approved_implementations(self) -> List[str]:
        return self._implementations.values()

    def approved_callers(self, target: str) -> List[str]:
        callers = self._callers.get(normalize_address(target))
        return callers.values() if callers is not None else []
