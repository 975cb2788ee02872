"""
Delegation Core Module

Shared infrastructure (configuration, logging, exceptions, hashing and
typed-data digests) plus the account contracts in ``delegation.core.contracts``.
"""

__all__ = []
