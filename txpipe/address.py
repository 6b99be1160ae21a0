"""Account addresses and well-known program ids"""

import hashlib
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import base58
from nacl.bindings import crypto_core_ed25519_is_valid_point

ADDRESS_LENGTH = 32
MAX_SEED_LENGTH = 32
MAX_SEEDS = 16

_PDA_MARKER = b'ProgramDerivedAddress'


@dataclass(frozen=True, order=True)
class Address:
    """32-byte account address, printed as base58"""
    raw: bytes

    def __post_init__(self):
        if not isinstance(self.raw, (bytes, bytearray)):
            raise TypeError('Address expects bytes')
        if len(self.raw) != ADDRESS_LENGTH:
            raise ValueError(f"Address must be {ADDRESS_LENGTH} bytes, got {len(self.raw)}")
        object.__setattr__(self, 'raw', bytes(self.raw))

    @classmethod
    def from_base58(cls, text: str) -> 'Address':
        return cls(base58.b58decode(text))

    @classmethod
    def coerce(cls, value: Union['Address', bytes, str]) -> 'Address':
        """Accept an Address, raw bytes or a base58 string"""
        if isinstance(value, Address):
            return value
        if isinstance(value, str):
            return cls.from_base58(value)
        return cls(value)

    def __bytes__(self) -> bytes:
        return self.raw

    def __str__(self) -> str:
        return base58.b58encode(self.raw).decode('ascii')

    def __repr__(self) -> str:
        return f"Address({self})"


def is_on_curve(raw: bytes) -> bool:
    return bool(crypto_core_ed25519_is_valid_point(raw))


def create_program_address(seeds: Sequence[bytes], program_id: Address) -> Address:
    """Hash seeds into an off-curve address owned by program_id"""
    if len(seeds) > MAX_SEEDS:
        raise ValueError('Too many seeds')
    hasher = hashlib.sha256()
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise ValueError('Seed exceeds 32 bytes')
        hasher.update(seed)
    hasher.update(program_id.raw)
    hasher.update(_PDA_MARKER)
    digest = hasher.digest()
    if is_on_curve(digest):
        raise ValueError('Derived address lies on the ed25519 curve')
    return Address(digest)


def find_program_address(seeds: Sequence[bytes], program_id: Address) -> Tuple[Address, int]:
    """Search bump seeds from 255 down for the first off-curve address"""
    if any(len(seed) > MAX_SEED_LENGTH for seed in seeds):
        raise ValueError('Seed exceeds 32 bytes')
    for bump in range(255, -1, -1):
        try:
            return create_program_address(list(seeds) + [bytes([bump])], program_id), bump
        except ValueError:
            continue
    raise ValueError('Unable to find a viable program address bump seed')


SYSTEM_PROGRAM = Address.from_base58('11111111111111111111111111111111')
COMPUTE_BUDGET_PROGRAM = Address.from_base58('ComputeBudget111111111111111111111111111111')
ADDRESS_LOOKUP_TABLE_PROGRAM = Address.from_base58('AddressLookupTab1e1111111111111111111111111')
