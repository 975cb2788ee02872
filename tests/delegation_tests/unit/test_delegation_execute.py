"""
Tests for batch execution: caller classification, nonce consumption,
signature checks and atomicity.
"""

import pytest
from eth_abi import decode as abi_decode

from delegation.core.config import DelegationConfig
from delegation.core.constants import BATCH_MODE, BATCH_WITH_OP_DATA_MODE, ZERO_KEY_HASH
from delegation.core.contracts.delegation import Delegation
from delegation.core.contracts.events import ProxyDelegationInitializationRequested
from delegation.core.contracts.guarded_executor import Call, encode_execution_data
from delegation.core.contracts.keys import KeyType
from delegation.core.contracts.nonces import join_nonce
from delegation.core.contracts.self_calls import encode_self_call
from delegation.core.delegation_exceptions import (
    CallReverted,
    InvalidNonce,
    KeyDoesNotExist,
    OpDataTooShort,
    Unauthorized,
    UnsupportedExecutionMode,
)

STRANGER = "0x" + "5a" * 20
COUNTER = "0x" + "c0" * 20
REVERTER = "0x" + "de" * 20
REVERT_DATA = bytes.fromhex("08c379a0") + b"\x00" * 4 + b"nope"
MULTICHAIN_NONCE = 0xC1D0 << 240


class Counter:
    def __init__(self):
        self.count = 0
        self.senders = []

    def __call__(self, ctx):
        self.count += 1
        self.senders.append(ctx.sender)
        return self.count.to_bytes(32, "big")


def _revert(ctx):
    raise CallReverted(REVERT_DATA)


def _signed(delegation, sign, calls, nonce):
    """Execution data carrying ``nonce || signature`` over the batch digest."""
    digest = delegation.compute_digest(calls, nonce)
    return encode_execution_data(calls, nonce.to_bytes(32, "big") + sign(digest))


@pytest.fixture
def counter(registry):
    code = Counter()
    registry.deploy(COUNTER, code)
    registry.deploy(REVERTER, _revert)
    return code


class TestEntryPointCaller:
    """Batches submitted by the trusted entry point."""

    def test_signed_batch_consumes_nonce(self, delegation, signer_factory):
        signer = signer_factory(KeyType.SECP256K1, super_admin=True)
        key_hash = delegation.authorize(delegation.address, signer.key)

        digest = delegation.compute_digest([], 0)
        signature = signer.sign(digest)
        assert delegation.unwrap_and_validate_signature(digest, signature) == (True, key_hash)

        execution_data = encode_execution_data([], (0).to_bytes(32, "big") + signature)
        assert delegation.execute(delegation.entry_point, BATCH_WITH_OP_DATA_MODE, execution_data) == []
        assert delegation.get_nonce(0) == 1

        with pytest.raises(InvalidNonce):
            delegation.execute(delegation.entry_point, BATCH_WITH_OP_DATA_MODE, execution_data)
        assert delegation.get_nonce(0) == 1

    def test_op_data_must_hold_nonce(self, delegation):
        execution_data = encode_execution_data([], b"\x00" * 31)
        with pytest.raises(OpDataTooShort):
            delegation.execute(delegation.entry_point, BATCH_WITH_OP_DATA_MODE, execution_data)

    def test_entry_point_without_op_data(self, delegation):
        with pytest.raises(OpDataTooShort):
            delegation.execute(delegation.entry_point, BATCH_MODE, encode_execution_data([]))

    def test_invalid_signature_does_not_consume_nonce(self, delegation, signer_factory, counter):
        signer = signer_factory(KeyType.P256)
        delegation.authorize(delegation.address, signer.key)
        calls = [Call(COUNTER)]
        # Signed over a different nonce than the one submitted
        digest = delegation.compute_digest(calls, 1)
        execution_data = encode_execution_data(calls, (0).to_bytes(32, "big") + signer.sign(digest))

        with pytest.raises(Unauthorized):
            delegation.execute(delegation.entry_point, BATCH_WITH_OP_DATA_MODE, execution_data)
        assert delegation.get_nonce(0) == 0
        assert counter.count == 0


class TestSelfCaller:
    """Batches the account submits to itself."""

    def test_empty_op_data_is_root_authorized(self, delegation, counter):
        results = delegation.execute(
            delegation.address, BATCH_MODE, encode_execution_data([Call(COUNTER), Call(COUNTER)])
        )

        assert results == [(1).to_bytes(32, "big"), (2).to_bytes(32, "big")]
        assert counter.senders == [delegation.address, delegation.address]
        assert delegation.get_nonce(0) == 0

    def test_self_with_op_data_is_signature_checked(self, delegation, counter):
        execution_data = encode_execution_data([Call(COUNTER)], (0).to_bytes(32, "big"))
        with pytest.raises(Unauthorized):
            delegation.execute(delegation.address, BATCH_WITH_OP_DATA_MODE, execution_data)
        assert counter.count == 0

    def test_root_may_administer_through_batch(self, delegation, signer_factory):
        signer = signer_factory(KeyType.WEBAUTHN_P256)
        calls = [
            Call(delegation.address, 0, encode_self_call("authorize", signer.key)),
            Call(delegation.address, 0, encode_self_call("setLabel", "batched")),
        ]
        results = delegation.execute(delegation.address, BATCH_MODE, encode_execution_data(calls))

        assert abi_decode(["bytes32"], results[0])[0] == signer.key_hash
        assert delegation.get_key(signer.key_hash) == signer.key
        assert delegation.label() == "batched"


class TestAnyCaller:
    """Batches relayed by arbitrary callers."""

    def test_requires_op_data(self, delegation):
        with pytest.raises(OpDataTooShort):
            delegation.execute(STRANGER, BATCH_MODE, encode_execution_data([]))

    def test_relay_of_root_signed_batch(self, delegation, root_sign, counter):
        calls = [Call(COUNTER)]
        delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, _signed(delegation, root_sign, calls, 0))

        assert counter.count == 1
        assert delegation.get_nonce(0) == 1

    def test_relay_of_key_signed_batch(self, delegation, signer_factory, counter):
        signer = signer_factory(KeyType.P256)
        delegation.authorize(delegation.address, signer.key)
        calls = [Call(COUNTER, 0, b"\x01")]

        delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, _signed(delegation, signer.sign, calls, 0))
        assert counter.count == 1

    def test_signature_bound_to_calls(self, delegation, root_sign, counter):
        digest = delegation.compute_digest([Call(COUNTER, 0, b"\x01")], 0)
        tampered = encode_execution_data(
            [Call(COUNTER, 0, b"\x02")], (0).to_bytes(32, "big") + root_sign(digest)
        )
        with pytest.raises(Unauthorized):
            delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, tampered)
        assert counter.count == 0

    def test_unknown_key_rolls_back_nonce(self, delegation, signer_factory):
        signer = signer_factory(KeyType.P256)
        with pytest.raises(KeyDoesNotExist):
            delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, _signed(delegation, signer.sign, [], 0))
        assert delegation.get_nonce(0) == 0
        assert delegation.events == []

    def test_expired_key_is_unauthorized(self, delegation, signer_factory, clock):
        signer = signer_factory(KeyType.SECP256K1, expiry=int(clock.now) + 10)
        delegation.authorize(delegation.address, signer.key)
        execution_data = _signed(delegation, signer.sign, [], 0)

        clock.now += 11
        with pytest.raises(Unauthorized):
            delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, execution_data)

    def test_parallel_sequence_keys(self, delegation, root_sign):
        first = join_nonce(1, 0)
        second = join_nonce(2, 0)
        delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, _signed(delegation, root_sign, [], second))
        delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, _signed(delegation, root_sign, [], first))

        assert delegation.get_nonce(1) == join_nonce(1, 1)
        assert delegation.get_nonce(2) == join_nonce(2, 1)

    def test_invalidated_nonce_cannot_be_used(self, delegation, root_sign):
        execution_data = _signed(delegation, root_sign, [], 0)
        delegation.invalidate_nonce(delegation.address, 1)

        with pytest.raises(InvalidNonce):
            delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, execution_data)


class TestSelfCallGuard:
    """Calls back into the account from signed batches."""

    def test_super_admin_may_authorize_keys(self, delegation, signer_factory):
        admin = signer_factory(KeyType.P256, super_admin=True)
        delegation.authorize(delegation.address, admin.key)
        new_key = signer_factory(KeyType.BLS).key
        calls = [Call(delegation.address, 0, encode_self_call("authorize", new_key))]

        delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, _signed(delegation, admin.sign, calls, 0))
        assert delegation.key_count() == 2

    def test_session_key_may_not_call_account(self, delegation, signer_factory):
        session = signer_factory(KeyType.P256)
        delegation.authorize(delegation.address, session.key)
        calls = [Call(delegation.address, 0, encode_self_call("setLabel", "pwned"))]

        with pytest.raises(Unauthorized):
            delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, _signed(delegation, session.sign, calls, 0))
        assert delegation.label() == ""
        assert delegation.get_nonce(0) == 0

    def test_unknown_self_call_reverts(self, delegation):
        calls = [Call(delegation.address, 0, b"\xde\xad\xbe\xef")]
        with pytest.raises(CallReverted):
            delegation.execute(delegation.address, BATCH_MODE, encode_execution_data(calls))


class TestAtomicity:
    """A failing call undoes the whole batch."""

    def test_revert_restores_state_and_surfaces_data(self, delegation, root_sign, counter):
        calls = [
            Call(delegation.address, 0, encode_self_call("setLabel", "partial")),
            Call(COUNTER),
            Call(REVERTER),
        ]
        events_before = list(delegation.events)

        with pytest.raises(CallReverted) as excinfo:
            delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, _signed(delegation, root_sign, calls, 0))

        assert excinfo.value.data == REVERT_DATA
        assert delegation.label() == ""
        assert delegation.get_nonce(0) == 0
        assert delegation.events == events_before
        assert not delegation.proxy_delegation_initialization_requested

    def test_crashing_callee_reverts_batch(self, delegation, root_sign, counter, registry):
        crasher = "0x" + "cc" * 20
        registry.deploy(crasher, lambda ctx: {}["missing"])
        calls = [Call(COUNTER), Call(crasher)]

        with pytest.raises(CallReverted) as excinfo:
            delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, _signed(delegation, root_sign, calls, 0))

        assert isinstance(excinfo.value.__cause__, KeyError)
        assert delegation.get_nonce(0) == 0
        assert delegation.events == []


class TestProxyInitialization:
    """First successful execution requests proxy initialization once."""

    def test_requested_once(self, delegation, root_sign):
        assert not delegation.proxy_delegation_initialization_requested
        delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, _signed(delegation, root_sign, [], 0))
        delegation.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, _signed(delegation, root_sign, [], 1))

        assert delegation.proxy_delegation_initialization_requested
        requests = [e for e in delegation.events if isinstance(e, ProxyDelegationInitializationRequested)]
        assert len(requests) == 1
        assert requests[0].account == delegation.address


class TestModes:
    """Execution mode handling."""

    def test_unsupported_mode(self, delegation):
        with pytest.raises(UnsupportedExecutionMode):
            delegation.execute(delegation.address, b"\x02" + b"\x00" * 31, encode_execution_data([]))

    def test_undecodable_data(self, delegation):
        with pytest.raises(UnsupportedExecutionMode):
            delegation.execute(delegation.address, BATCH_MODE, b"\x01\x02")


class TestMultichain:
    """Multichain nonces authorize the same batch on every chain."""

    def test_same_signature_on_two_chains(self, account_address, root_sign, clock):
        mainnet = Delegation(account_address, config=DelegationConfig(chain_id=1), clock=clock)
        rollup = Delegation(account_address, config=DelegationConfig(chain_id=10), clock=clock)

        execution_data = _signed(mainnet, root_sign, [], MULTICHAIN_NONCE)
        mainnet.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, execution_data)
        rollup.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, execution_data)

        assert mainnet.get_nonce(MULTICHAIN_NONCE >> 64) == MULTICHAIN_NONCE + 1
        assert rollup.get_nonce(MULTICHAIN_NONCE >> 64) == MULTICHAIN_NONCE + 1

    def test_chain_bound_signature_fails_elsewhere(self, account_address, root_sign, clock):
        mainnet = Delegation(account_address, config=DelegationConfig(chain_id=1), clock=clock)
        rollup = Delegation(account_address, config=DelegationConfig(chain_id=10), clock=clock)

        execution_data = _signed(mainnet, root_sign, [], 0)
        with pytest.raises(Unauthorized):
            rollup.execute(STRANGER, BATCH_WITH_OP_DATA_MODE, execution_data)

    def test_root_key_hash_is_zero(self, delegation, root_sign):
        digest = delegation.compute_digest([], 0)
        assert delegation.unwrap_and_validate_signature(digest, root_sign(digest)) == (True, ZERO_KEY_HASH)
