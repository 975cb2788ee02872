"""
Delegation account configuration.

All settings are read from environment variables with safe defaults.
Values are validated at load time; an invalid value raises
ConfigurationError instead of silently falling back.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Optional

from .delegation_exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

DEFAULT_CHAIN_ID = 1
DEFAULT_ENTRY_POINT = "0x307AF7d28AfEE82092aA95D35644898311CA5360"
DEFAULT_DOMAIN_NAME = "Delegation"
DEFAULT_DOMAIN_VERSION = "0.0.1"


def _get_int(env_var: str, default: int) -> int:
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw, 0)
    except ValueError as exc:
        raise ConfigurationError(
            f"{env_var} must be an integer, got {raw!r}",
            details={"env_var": env_var},
        ) from exc
    if value < 0:
        raise ConfigurationError(f"{env_var} must be non-negative", details={"env_var": env_var})
    return value


def _get_address(env_var: str, default: str) -> str:
    raw = os.getenv(env_var, "").strip() or default
    if not _ADDRESS_RE.match(raw):
        raise ConfigurationError(
            f"{env_var} must be a 0x-prefixed 20-byte hex address, got {raw!r}",
            details={"env_var": env_var},
        )
    return raw


CHAIN_ID = _get_int("DELEGATION_CHAIN_ID", DEFAULT_CHAIN_ID)
ENTRY_POINT = _get_address("DELEGATION_ENTRY_POINT", DEFAULT_ENTRY_POINT)
DOMAIN_NAME = os.getenv("DELEGATION_DOMAIN_NAME", DEFAULT_DOMAIN_NAME)
DOMAIN_VERSION = os.getenv("DELEGATION_DOMAIN_VERSION", DEFAULT_DOMAIN_VERSION)
LOG_LEVEL = os.getenv("DELEGATION_LOG_LEVEL", "INFO").upper()
LOG_FILE: Optional[str] = os.getenv("DELEGATION_LOG_FILE", "").strip() or None


@dataclass(frozen=True)
class DelegationConfig:
    """Settings injected into a Delegation account."""

    chain_id: int = CHAIN_ID
    entry_point: str = ENTRY_POINT
    domain_name: str = DOMAIN_NAME
    domain_version: str = DOMAIN_VERSION

    def __post_init__(self) -> None:
        if self.chain_id < 0:
            raise ConfigurationError("chain_id must be non-negative")
        if not _ADDRESS_RE.match(self.entry_point):
            raise ConfigurationError(f"Invalid entry point address: {self.entry_point!r}")

    @classmethod
    def from_env(cls) -> "DelegationConfig":
        """Build a config from the DELEGATION_* environment variables."""
        config = cls(
            chain_id=_get_int("DELEGATION_CHAIN_ID", DEFAULT_CHAIN_ID),
            entry_point=_get_address("DELEGATION_ENTRY_POINT", DEFAULT_ENTRY_POINT),
            domain_name=os.getenv("DELEGATION_DOMAIN_NAME", DEFAULT_DOMAIN_NAME),
            domain_version=os.getenv("DELEGATION_DOMAIN_VERSION", DEFAULT_DOMAIN_VERSION),
        )
        logger.debug(
            "Delegation config loaded",
            extra={
                "event": "config.loaded",
                "chain_id": config.chain_id,
                "entry_point": config.entry_point[:10],
            },
        )
        return config
