"""Tests for per-sequence-key nonce tracking."""

import pytest

from delegation.core.contracts.nonces import NonceSequencer, join_nonce, split_nonce
from delegation.core.delegation_exceptions import InvalidNonce, NewSequenceMustBeLarger, NonceError


@pytest.fixture
def nonces():
    return NonceSequencer()


def test_split_and_join():
    nonce = join_nonce(0xABC, 7)
    assert nonce == (0xABC << 64) | 7
    assert split_nonce(nonce) == (0xABC, 7)


def test_split_rejects_out_of_range():
    with pytest.raises(ValueError):
        split_nonce(-1)
    with pytest.raises(ValueError):
        split_nonce(1 << 256)


def test_counter_starts_at_zero(nonces):
    assert nonces.get(0) == 0
    assert nonces.get(12345) == 0


def test_check_and_increment_consumes_exact_counter(nonces):
    nonces.check_and_increment(0)
    nonces.check_and_increment(1)
    assert nonces.get(0) == 2


def test_replay_is_rejected(nonces):
    nonces.check_and_increment(0)
    with pytest.raises(InvalidNonce):
        nonces.check_and_increment(0)
    assert nonces.get(0) == 1


def test_future_nonce_is_rejected(nonces):
    with pytest.raises(InvalidNonce):
        nonces.check_and_increment(5)
    assert nonces.get(0) == 0


def test_sequences_are_independent(nonces):
    nonces.check_and_increment(join_nonce(1, 0))
    nonces.check_and_increment(join_nonce(1, 1))
    nonces.check_and_increment(join_nonce(2, 0))

    assert nonces.get(0) == 0
    assert nonces.get(1) == 2
    assert nonces.get(2) == 1


def test_invalidate_skips_lower_counters(nonces):
    nonces.invalidate(join_nonce(3, 5))
    assert nonces.get(3) == 5

    with pytest.raises(InvalidNonce):
        nonces.check_and_increment(join_nonce(3, 4))
    nonces.check_and_increment(join_nonce(3, 5))
    assert nonces.get(3) == 6


def test_invalidate_must_move_forward(nonces):
    nonces.invalidate(10)
    with pytest.raises(NewSequenceMustBeLarger):
        nonces.invalidate(10)
    with pytest.raises(NewSequenceMustBeLarger):
        nonces.invalidate(9)
    assert nonces.get(0) == 10


def test_invalidate_zero_on_fresh_sequence(nonces):
    with pytest.raises(NewSequenceMustBeLarger):
        nonces.invalidate(0)


def test_nonce_errors_share_base_class():
    assert issubclass(InvalidNonce, NonceError)
    assert issubclass(NewSequenceMustBeLarger, NonceError)
