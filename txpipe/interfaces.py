"""Capabilities consumed from the network and from signers"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence

from .address import Address


@dataclass(frozen=True)
class SimulationResult:
    """Outcome of a dry run"""
    success: bool
    logs: List[str] = field(default_factory=list)
    units_consumed: int = 0
    error: Optional[str] = None


class StatusKind(Enum):
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    FAILED = 'failed'


@dataclass(frozen=True)
class SubmissionStatus:
    """Ledger-reported status of a submitted transaction"""
    kind: StatusKind
    reason: Optional[str] = None

    @classmethod
    def pending(cls) -> 'SubmissionStatus':
        return cls(StatusKind.PENDING)

    @classmethod
    def confirmed(cls) -> 'SubmissionStatus':
        return cls(StatusKind.CONFIRMED)

    @classmethod
    def failed(cls, reason: str) -> 'SubmissionStatus':
        return cls(StatusKind.FAILED, reason)


class LedgerClient(Protocol):
    """Network transport for one ledger"""

    async def fetch_freshness_token(self) -> bytes:
        ...

    async def simulate(self, tx_bytes: bytes) -> SimulationResult:
        ...

    async def submit(self, tx_bytes: bytes) -> str:
        ...

    async def poll_status(self, submission_id: str) -> SubmissionStatus:
        ...

    async def fetch_account_data(self, address: Address) -> Optional[bytes]:
        ...


@dataclass(frozen=True)
class SignerCapabilities:
    """What a signer can do beyond signing a full message once"""
    supports_partial_sign: bool = False
    supports_resign: bool = True
    supports_fee_payer_swap: bool = False


class Signer(Protocol):
    """Produces signatures for the addresses it controls"""

    def capabilities(self) -> SignerCapabilities:
        ...

    def addresses(self) -> Sequence[Address]:
        ...

    def sign(self, message: bytes, for_addresses: Sequence[Address]) -> Dict[Address, bytes]:
        ...
