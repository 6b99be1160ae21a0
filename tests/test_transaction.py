"""
Tests for signing and the transaction wire format.

Test plan:
- A fully signed transaction verifies, round-trips and reports the fee
  payer signature as its id
- Missing signers raise MissingSignature; signers that cannot partially
  sign raise CapabilityUnsupported
- serialize_checked refuses unsigned and oversized transactions
"""

import base58
import pytest

from txpipe.account import Operation, readonly, signer_writable, writable
from txpipe.address import Address
from txpipe.errors import CapabilityUnsupported, EncodingError, MessageTooLarge, MissingSignature
from txpipe.interfaces import SignerCapabilities
from txpipe.message import compile_message
from txpipe.signer import Keypair, KeypairSigner
from txpipe.transaction import EMPTY_SIGNATURE, MAX_TRANSACTION_SIZE, Transaction, estimate_transaction_size

BLOCKHASH = b'\x07' * 32
PROGRAM = Address(b'\x02' * 32)


def _message(*signers, extra_accounts=0):
    accounts = [signer_writable(kp.address) for kp in signers]
    accounts += [readonly(Address(i.to_bytes(2, 'big') + b'\x05' * 30)) for i in range(extra_accounts)]
    op = Operation(PROGRAM, accounts, b'\x01')
    return compile_message([op], BLOCKHASH, fee_payer=signers[0].address)


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


def test_sign_verify_round_trip():
    payer, other = Keypair(), Keypair()
    tx = Transaction(_message(payer, other)).sign([KeypairSigner([payer, other])])

    assert tx.is_fully_signed
    assert tx.verify_signatures()
    assert tx.signature == base58.b58encode(tx.signatures[0]).decode()

    raw = tx.serialize_checked()
    assert raw[0] == 2
    assert Transaction.deserialize(raw) == tx


def test_signers_may_be_split_across_wallets():
    payer, other = Keypair(), Keypair()
    tx = Transaction(_message(payer, other)).sign([KeypairSigner([other]), KeypairSigner([payer])])
    assert tx.verify_signatures()


def test_unsigned_transaction_has_no_id():
    payer = Keypair()
    tx = Transaction(_message(payer))
    assert tx.signature is None
    assert tx.signatures == [EMPTY_SIGNATURE]
    assert tx.missing_signers() == [payer.address]


def test_missing_signer_raises():
    payer, other = Keypair(), Keypair()
    with pytest.raises(MissingSignature) as excinfo:
        Transaction(_message(payer, other)).sign([KeypairSigner([payer])])
    assert excinfo.value.missing == [str(other.address)]


def test_partial_signing_leaves_slots_empty():
    payer, other = Keypair(), Keypair()
    tx = Transaction(_message(payer, other)).sign([KeypairSigner([payer])], partial=True)
    assert tx.missing_signers() == [other.address]
    with pytest.raises(MissingSignature):
        tx.serialize_checked()


def test_subset_signer_without_partial_capability():
    payer, other = Keypair(), Keypair()
    wallet = KeypairSigner([payer], SignerCapabilities(supports_partial_sign=False))
    with pytest.raises(CapabilityUnsupported):
        Transaction(_message(payer, other)).sign([wallet])


def test_tampered_signature_fails_verification():
    payer = Keypair()
    tx = Transaction(_message(payer)).sign([KeypairSigner([payer])])
    sig = bytearray(tx.signatures[0])
    sig[0] ^= 0xff
    tx.signatures[0] = bytes(sig)
    assert not tx.verify_signatures()


def test_signature_count_must_match_header():
    payer = Keypair()
    with pytest.raises(EncodingError):
        Transaction(_message(payer), [EMPTY_SIGNATURE, EMPTY_SIGNATURE])


# ---------------------------------------------------------------------------
# Size
# ---------------------------------------------------------------------------


def test_oversized_transaction_rejected():
    payer = Keypair()
    msg = _message(payer, extra_accounts=40)
    assert estimate_transaction_size(msg) > MAX_TRANSACTION_SIZE
    tx = Transaction(msg).sign([KeypairSigner([payer])])
    with pytest.raises(MessageTooLarge):
        tx.serialize_checked()


def test_estimate_matches_signed_size():
    payer = Keypair()
    msg = _message(payer, extra_accounts=3)
    tx = Transaction(msg).sign([KeypairSigner([payer])])
    assert estimate_transaction_size(msg) == len(tx.serialize())
