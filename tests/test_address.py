"""
Tests for addresses, account references and program-derived addresses.
"""

import pytest

from txpipe.account import AccountReference, Operation, merge, readonly, signer, signer_writable, writable
from txpipe.address import (
    SYSTEM_PROGRAM,
    Address,
    create_program_address,
    find_program_address,
    is_on_curve,
)
from txpipe.signer import Keypair


def addr(n: int) -> Address:
    return Address(bytes([n]) * 32)


# ---------------------------------------------------------------------------
# Address
# ---------------------------------------------------------------------------


def test_base58_round_trip():
    a = addr(7)
    assert Address.from_base58(str(a)) == a
    assert Address.coerce(str(a)) == a
    assert Address.coerce(a.raw) == a


def test_system_program_is_all_zero():
    assert SYSTEM_PROGRAM.raw == bytes(32)
    assert str(SYSTEM_PROGRAM) == '11111111111111111111111111111111'


def test_wrong_length_rejected():
    with pytest.raises(ValueError):
        Address(b'\x01' * 31)


def test_addresses_hash_by_bytes():
    assert len({addr(1), Address(bytes([1]) * 32)}) == 1


# ---------------------------------------------------------------------------
# Program-derived addresses
# ---------------------------------------------------------------------------


def test_find_program_address_is_deterministic_and_off_curve():
    program = addr(9)
    first, bump = find_program_address([b'vault', addr(3).raw], program)
    again, bump_again = find_program_address([b'vault', addr(3).raw], program)
    assert (first, bump) == (again, bump_again)
    assert not is_on_curve(first.raw)
    assert create_program_address([b'vault', addr(3).raw, bytes([bump])], program) == first


def test_keypair_addresses_are_on_curve():
    assert is_on_curve(Keypair().address.raw)


def test_seed_too_long():
    with pytest.raises(ValueError):
        find_program_address([b'x' * 33], addr(9))


# ---------------------------------------------------------------------------
# Account references
# ---------------------------------------------------------------------------


def test_merge_is_monotonic():
    a = addr(1)
    assert merge(readonly(a), writable(a)) == AccountReference(a, False, True)
    assert merge(writable(a), readonly(a)) == AccountReference(a, False, True)
    assert merge(signer(a), writable(a)) == signer_writable(a)
    assert merge(readonly(a), readonly(a)) == readonly(a)


def test_merge_requires_same_address():
    with pytest.raises(ValueError):
        merge(readonly(addr(1)), readonly(addr(2)))


def test_operation_addresses_program_first():
    op = Operation(addr(5), [writable(addr(1)), readonly(addr(2))], bytearray(b'\x01'))
    assert list(op.addresses()) == [addr(5), addr(1), addr(2)]
    assert isinstance(op.accounts, tuple)
    assert op.data == b'\x01'
