"""Account references and operations"""

from dataclasses import dataclass, field
from typing import Iterable, Tuple

from .address import Address


@dataclass(frozen=True)
class AccountReference:
    """Participant account in an operation"""
    address: Address
    is_signer: bool = False
    is_writable: bool = False


def merge(a: AccountReference, b: AccountReference) -> AccountReference:
    """Combine two references to the same address.

    Flags are OR-ed, so a read-only or non-signer mention never downgrades
    an earlier writable or signer one.
    """
    if a.address != b.address:
        raise ValueError(f"Cannot merge references to different addresses: {a.address} != {b.address}")
    return AccountReference(
        address=a.address,
        is_signer=a.is_signer or b.is_signer,
        is_writable=a.is_writable or b.is_writable,
    )


def signer_writable(address: Address) -> AccountReference:
    return AccountReference(address, is_signer=True, is_writable=True)


def signer(address: Address) -> AccountReference:
    return AccountReference(address, is_signer=True, is_writable=False)


def writable(address: Address) -> AccountReference:
    return AccountReference(address, is_signer=False, is_writable=True)


def readonly(address: Address) -> AccountReference:
    return AccountReference(address, is_signer=False, is_writable=False)


@dataclass(frozen=True)
class Operation:
    """Opaque on-chain operation: program, accounts and payload"""
    program_id: Address
    accounts: Tuple[AccountReference, ...] = field(default_factory=tuple)
    data: bytes = b''

    def __post_init__(self):
        object.__setattr__(self, 'accounts', tuple(self.accounts))
        object.__setattr__(self, 'data', bytes(self.data))

    def addresses(self) -> Iterable[Address]:
        """Program id followed by account addresses, in order"""
        yield self.program_id
        for ref in self.accounts:
            yield ref.address
