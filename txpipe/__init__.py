"""txpipe - transaction preparation and submission for Solana-style ledgers"""

from .account import AccountReference, Operation
from .address import Address, find_program_address
from .batch import BatchExecutor, BatchOperation, BatchPlanner, BatchStrategy, create_operation
from .client import LedgerRpcClient
from .compute_budget import ComputeBudget, recommend_compute_units
from .config import BatchConfig, FeeConfig, PipelineConfig, RetryPolicy, load_config
from .errors import (
    AmbiguousOutcome,
    CapabilityUnsupported,
    FailureKind,
    FreshnessExpired,
    MessageTooLarge,
    MissingSignature,
    Rejected,
    RpcError,
    TxPipeError,
)
from .fees import Outcome, PriorityFeeEstimator, UrgencyTier
from .interfaces import LedgerClient, Signer, SignerCapabilities
from .logging_config import setup_logging
from .lookup_table import AddressFrequencyTracker, AddressLookupTable
from .message import CompiledMessage, compile_message
from .pipeline import SubmissionPipeline, SubmissionResult, SubmissionState
from .signer import Keypair, KeypairSigner
from .transaction import Transaction

__version__ = '0.1.0'

__all__ = [
    'AccountReference',
    'Address',
    'AddressFrequencyTracker',
    'AddressLookupTable',
    'AmbiguousOutcome',
    'BatchConfig',
    'BatchExecutor',
    'BatchOperation',
    'BatchPlanner',
    'BatchStrategy',
    'CapabilityUnsupported',
    'CompiledMessage',
    'ComputeBudget',
    'FailureKind',
    'FeeConfig',
    'FreshnessExpired',
    'Keypair',
    'KeypairSigner',
    'LedgerClient',
    'LedgerRpcClient',
    'MessageTooLarge',
    'MissingSignature',
    'Operation',
    'Outcome',
    'PipelineConfig',
    'PriorityFeeEstimator',
    'Rejected',
    'RetryPolicy',
    'RpcError',
    'Signer',
    'SignerCapabilities',
    'SubmissionPipeline',
    'SubmissionResult',
    'SubmissionState',
    'Transaction',
    'TxPipeError',
    'UrgencyTier',
    'compile_message',
    'create_operation',
    'find_program_address',
    'load_config',
    'recommend_compute_units',
    'setup_logging',
]
