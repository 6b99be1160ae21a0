"""Error taxonomy for transaction preparation and submission"""

from enum import Enum
from typing import List, Optional


class FailureKind(Enum):
    """Coarse failure categories surfaced to callers"""
    MESSAGE_TOO_LARGE = 'message_too_large'
    MISSING_SIGNATURE = 'missing_signature'
    FRESHNESS_EXPIRED = 'freshness_expired'
    AMBIGUOUS = 'ambiguous'
    REJECTED = 'rejected'
    CAPABILITY_UNSUPPORTED = 'capability_unsupported'
    ENCODING = 'encoding'
    CONTRACT_VIOLATION = 'contract_violation'


# Kinds the pipeline may retry internally. Everything else goes to the caller.
RECOVERABLE_KINDS = frozenset({FailureKind.FRESHNESS_EXPIRED, FailureKind.AMBIGUOUS})


class TxPipeError(Exception):
    """Base error carrying kind, reason and attempt count"""

    kind = FailureKind.REJECTED

    def __init__(self, reason: str, attempts: int = 0):
        self.reason = reason
        self.attempts = attempts
        super().__init__(f"{self.kind.value}: {reason}")

    @property
    def recoverable(self) -> bool:
        return self.kind in RECOVERABLE_KINDS


class MessageTooLarge(TxPipeError):
    """Account table or serialized transaction exceeds a protocol ceiling"""
    kind = FailureKind.MESSAGE_TOO_LARGE


class MissingSignature(TxPipeError):
    """A required signer produced no signature"""
    kind = FailureKind.MISSING_SIGNATURE

    def __init__(self, reason: str, missing: Optional[List[str]] = None, attempts: int = 0):
        self.missing = list(missing or [])
        super().__init__(reason, attempts)


class FreshnessExpired(TxPipeError):
    """Freshness token aged out before the transaction landed"""
    kind = FailureKind.FRESHNESS_EXPIRED


class AmbiguousOutcome(TxPipeError):
    """Timeout or partial network failure; status must be re-checked"""
    kind = FailureKind.AMBIGUOUS


class Rejected(TxPipeError):
    """Ledger explicitly reported failure"""
    kind = FailureKind.REJECTED

    def __init__(self, reason: str, logs: Optional[List[str]] = None, attempts: int = 0):
        self.logs = list(logs or [])
        super().__init__(reason, attempts)


class CapabilityUnsupported(TxPipeError):
    """Signer cannot perform the requested operation"""
    kind = FailureKind.CAPABILITY_UNSUPPORTED


class EncodingError(TxPipeError, ValueError):
    """Malformed wire bytes"""
    kind = FailureKind.ENCODING


class LookupTableContractError(TxPipeError, AssertionError):
    """A signer or program id was routed through a lookup table"""
    kind = FailureKind.CONTRACT_VIOLATION


class RpcError(Exception):
    """RPC Error"""
    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"RPC Error {code}: {message}")


_FRESHNESS_MARKERS = (
    'blockhash not found',
    'blockhash expired',
    'block height exceeded',
    'too old',
)

_AMBIGUOUS_MARKERS = (
    'timed out',
    'timeout',
    'connection reset',
    'node is behind',
    'node is unhealthy',
    # identical bytes landed earlier; only a status check can tell
    'already been processed',
    'already processed',
)


def classify_failure(reason: Optional[str]) -> FailureKind:
    """Map a ledger or RPC failure reason to a FailureKind.

    Matching is case-insensitive and substring based. Reasons that match no
    known marker are treated as explicit rejections, never as success.
    """
    if not reason:
        return FailureKind.REJECTED
    text = reason.lower()
    if any(marker in text for marker in _FRESHNESS_MARKERS):
        return FailureKind.FRESHNESS_EXPIRED
    if any(marker in text for marker in _AMBIGUOUS_MARKERS):
        return FailureKind.AMBIGUOUS
    return FailureKind.REJECTED
