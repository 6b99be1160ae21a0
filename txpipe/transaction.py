"""Signed transaction container and wire encoding"""

import hashlib
import logging
from typing import Dict, List, Optional, Sequence

import base58
from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from .address import Address
from .encoding import ByteReader, encode_length
from .errors import CapabilityUnsupported, EncodingError, MessageTooLarge, MissingSignature
from .interfaces import Signer
from .message import CompiledMessage

log = logging.getLogger(__name__)

SIGNATURE_LENGTH = 64
MAX_TRANSACTION_SIZE = 1232
EMPTY_SIGNATURE = bytes(SIGNATURE_LENGTH)


class Transaction:
    """Compiled message plus one signature slot per required signer"""

    def __init__(self, message: CompiledMessage, signatures: Optional[List[bytes]] = None):
        self.message = message
        required = message.header.num_required_signatures
        self.signatures: List[bytes] = list(signatures) if signatures is not None else [EMPTY_SIGNATURE] * required
        if len(self.signatures) != required:
            raise EncodingError(f"Expected {required} signatures, got {len(self.signatures)}")

    @property
    def signature(self) -> Optional[str]:
        """Transaction id: base58 of the first (fee payer) signature"""
        if not self.signatures or self.signatures[0] == EMPTY_SIGNATURE:
            return None
        return base58.b58encode(self.signatures[0]).decode('ascii')

    def missing_signers(self) -> List[Address]:
        return [
            address for address, sig in zip(self.message.signer_keys(), self.signatures)
            if sig == EMPTY_SIGNATURE
        ]

    @property
    def is_fully_signed(self) -> bool:
        return not self.missing_signers()

    def hash(self) -> bytes:
        """Compute transaction hash"""
        return hashlib.sha256(self.serialize()).digest()

    def sign(self, signers: Sequence[Signer], partial: bool = False) -> 'Transaction':
        """Fill signature slots from signers.

        Each signer signs for the required addresses it holds. A signer that
        covers only part of the still-missing set must support partial
        signing. Unless partial is set, every required signer must end up
        with a signature.

        Raises:
            CapabilityUnsupported: a signer cannot partially sign
            MissingSignature: required signers left unsigned
        """
        message_bytes = self.message.serialize()
        required = self.message.signer_keys()
        slot_of = {address: i for i, address in enumerate(required)}

        for signer in signers:
            missing = self.missing_signers()
            held = set(signer.addresses())
            wanted = [address for address in missing if address in held]
            if not wanted:
                continue
            if len(wanted) < len(missing) and not signer.capabilities().supports_partial_sign:
                raise CapabilityUnsupported(
                    f"Signer covers {len(wanted)} of {len(missing)} missing signatures but cannot partially sign"
                )
            produced: Dict[Address, bytes] = signer.sign(message_bytes, wanted)
            for address, sig in produced.items():
                if address not in slot_of or address not in wanted:
                    raise EncodingError(f"Signer returned a signature for unrequested address {address}")
                if len(sig) != SIGNATURE_LENGTH:
                    raise EncodingError('Signature must be 64 bytes')
                self.signatures[slot_of[address]] = bytes(sig)

        missing = self.missing_signers()
        if missing and not partial:
            raise MissingSignature(
                f"{len(missing)} required signer(s) did not sign",
                missing=[str(a) for a in missing],
            )
        return self

    def verify_signatures(self) -> bool:
        message_bytes = self.message.serialize()
        for address, sig in zip(self.message.signer_keys(), self.signatures):
            try:
                VerifyKey(address.raw).verify(message_bytes, sig)
            except BadSignatureError:
                return False
        return True

    def serialize(self) -> bytes:
        """Serialize transaction to bytes"""
        parts = [encode_length(len(self.signatures))]
        parts.extend(self.signatures)
        parts.append(self.message.serialize())
        return b''.join(parts)

    def serialize_checked(self, max_size: int = MAX_TRANSACTION_SIZE) -> bytes:
        """Serialize, refusing unsigned or oversized transactions"""
        missing = self.missing_signers()
        if missing:
            raise MissingSignature(
                f"{len(missing)} required signer(s) did not sign",
                missing=[str(a) for a in missing],
            )
        raw = self.serialize()
        if len(raw) > max_size:
            raise MessageTooLarge(f"Transaction is {len(raw)} bytes, limit {max_size}")
        return raw

    @classmethod
    def deserialize(cls, data: bytes) -> 'Transaction':
        reader = ByteReader(data)
        count = reader.read_length()
        signatures = [reader.read(SIGNATURE_LENGTH) for _ in range(count)]
        message = CompiledMessage.read_from(reader)
        reader.expect_end()
        return cls(message, signatures)

    def __eq__(self, other):
        if not isinstance(other, Transaction):
            return NotImplemented
        return self.message == other.message and self.signatures == other.signatures

    def __repr__(self):
        return f"Transaction(signature={self.signature}, signers={len(self.signatures)})"


def estimate_transaction_size(message: CompiledMessage) -> int:
    """Wire size once every required signature is present"""
    n = message.header.num_required_signatures
    return len(encode_length(n)) + n * SIGNATURE_LENGTH + len(message.serialize())
