"""Submission pipeline: build, simulate, sign, submit, confirm, retry"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, List, Optional, Sequence, Tuple, TypeVar

from .account import Operation
from .address import COMPUTE_BUDGET_PROGRAM, Address
from .batch import BatchFailed, BatchResult, BatchSucceeded, PlannedBatch
from .compute_budget import DEFAULT_COMPUTE_UNITS, ComputeBudget, recommend_compute_units
from .config import PipelineConfig
from .errors import (
    AmbiguousOutcome,
    CapabilityUnsupported,
    FailureKind,
    FreshnessExpired,
    Rejected,
    RpcError,
    TxPipeError,
    classify_failure,
)
from .fees import Outcome, PriorityFeeEstimator, UrgencyTier
from .interfaces import LedgerClient, Signer, StatusKind
from .lookup_table import AddressLookupTable
from .message import CompiledMessage, compile_message
from .transaction import Transaction

log = logging.getLogger(__name__)

T = TypeVar('T')


class SubmissionState(Enum):
    BUILT = 'built'
    SIMULATED = 'simulated'
    SIGNED = 'signed'
    SUBMITTED = 'submitted'
    CONFIRMING = 'confirming'
    CONFIRMED = 'confirmed'
    FAILED = 'failed'
    EXHAUSTED = 'exhausted'
    CANCELLED = 'cancelled'


_S = SubmissionState
_TRANSITIONS = {
    _S.BUILT: {_S.SIMULATED, _S.SIGNED, _S.FAILED, _S.CANCELLED},
    _S.SIMULATED: {_S.SIGNED, _S.FAILED, _S.CANCELLED},
    _S.SIGNED: {_S.SUBMITTED, _S.FAILED, _S.CANCELLED},
    _S.SUBMITTED: {_S.CONFIRMING, _S.FAILED, _S.CANCELLED},
    _S.CONFIRMING: {_S.CONFIRMED, _S.FAILED, _S.CANCELLED},
    _S.FAILED: {_S.BUILT, _S.EXHAUSTED, _S.CANCELLED},
    _S.CONFIRMED: set(),
    _S.EXHAUSTED: set(),
    _S.CANCELLED: set(),
}


class SubmissionAttempt:
    """State of one logical submission across rebuilds and resends"""

    def __init__(self):
        self.state = SubmissionState.BUILT
        self.history: List[SubmissionState] = [SubmissionState.BUILT]
        self.attempts = 0
        self.signatures_submitted: List[str] = []
        self.used_resign = False
        self._cancelled = False

    def transition(self, state: SubmissionState):
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")
        log.debug('Submission %s -> %s', self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def cancel(self):
        """Stop at the next checkpoint.

        Before submission nothing reaches the network. After submission only
        local polling stops; the transaction may still land.
        """
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def submitted(self) -> bool:
        return bool(self.signatures_submitted)


@dataclass(frozen=True)
class SubmissionResult:
    state: SubmissionState
    signature: Optional[str]
    attempts: int
    signatures_submitted: List[str] = field(default_factory=list)
    used_resign: bool = False
    price: int = 0
    error: Optional[TxPipeError] = None
    may_have_landed: bool = False

    @property
    def confirmed(self) -> bool:
        return self.state is SubmissionState.CONFIRMED

    def raise_for_error(self):
        """Raise the surfaced error unless the submission confirmed"""
        if self.error is not None and not self.confirmed:
            raise self.error


class _Cancelled(Exception):
    pass


class SubmissionPipeline:
    """Turns operations into a confirmed transaction.

    One send() drives a SubmissionAttempt through the state machine,
    retrying freshness expiry and ambiguous outcomes up to
    retry.max_attempts. An ambiguous submission is never rebuilt: the same
    signature is polled first, and any resend uses identical signed bytes.
    """

    def __init__(
        self,
        client: LedgerClient,
        signers: Sequence[Signer],
        fee_payer: Address,
        estimator: Optional[PriorityFeeEstimator] = None,
        config: Optional[PipelineConfig] = None,
        lookup_tables: Sequence[AddressLookupTable] = (),
    ):
        self.client = client
        self.signers = list(signers)
        self.fee_payer = fee_payer
        self.config = config or PipelineConfig()
        self.estimator = estimator
        self.lookup_tables = list(lookup_tables)

    def build(
        self,
        operations: Sequence[Operation],
        blockhash: bytes,
        budget: Optional[ComputeBudget] = None,
    ) -> CompiledMessage:
        """Compile operations, with compute-budget operations first. No I/O."""
        prefix = budget.to_operations() if budget is not None else []
        return compile_message(prefix + list(operations), blockhash, self.fee_payer, self.lookup_tables)

    def sign(self, message: CompiledMessage) -> Transaction:
        return Transaction(message).sign(self.signers)

    def new_attempt(self) -> SubmissionAttempt:
        return SubmissionAttempt()

    async def _timed(self, call: Awaitable[T], timeout: float, what: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError:
            raise AmbiguousOutcome(f"{what} timed out after {timeout}s")
        except RpcError as e:
            raise _classified(e.message)

    def _fee_program(self, operations: Sequence[Operation]) -> Address:
        for op in operations:
            if op.program_id != COMPUTE_BUDGET_PROGRAM:
                return op.program_id
        return operations[0].program_id

    def _report(self, program_id: Address, tier: UrgencyTier, started: float, outcome: Outcome, price: int):
        if self.estimator is None:
            return
        latency_ms = (time.monotonic() - started) * 1000.0
        self.estimator.record_outcome(
            program_id, tier, latency_ms, outcome, price, self.config.network_label,
        )

    def _check_resign(self):
        if not self.config.retry.allow_resign:
            raise CapabilityUnsupported('Re-signing disabled by retry policy')
        for signer in self.signers:
            if not signer.capabilities().supports_resign:
                raise CapabilityUnsupported('Signer cannot re-sign a rebuilt transaction')

    @staticmethod
    def _checkpoint(attempt: SubmissionAttempt):
        if attempt.cancelled:
            raise _Cancelled()

    async def _prepare(
        self,
        attempt: SubmissionAttempt,
        operations: Sequence[Operation],
        budget: ComputeBudget,
        simulate: bool,
    ) -> Tuple[Transaction, ComputeBudget]:
        cfg = self.config
        self._checkpoint(attempt)
        blockhash = await self._timed(self.client.fetch_freshness_token(), cfg.fetch_timeout, 'fetch freshness token')
        message = self.build(operations, blockhash, budget)

        if simulate:
            self._checkpoint(attempt)
            unsigned = Transaction(message)
            sim = await self._timed(self.client.simulate(unsigned.serialize()), cfg.simulate_timeout, 'simulate')
            if not sim.success:
                if classify_failure(sim.error) is FailureKind.FRESHNESS_EXPIRED:
                    raise FreshnessExpired(sim.error or 'simulation reported stale token')
                raise Rejected(sim.error or 'simulation failed', logs=sim.logs)
            if sim.units_consumed > 0:
                units = recommend_compute_units(
                    sim.units_consumed,
                    cfg.compute_margin_percent,
                    ceiling=cfg.batch.max_compute_units_per_tx,
                )
                budget = ComputeBudget(units, budget.micro_lamports)
                message = self.build(operations, blockhash, budget)
            attempt.transition(SubmissionState.SIMULATED)

        self._checkpoint(attempt)
        tx = self.sign(message)
        tx.serialize_checked(cfg.batch.max_tx_size_bytes)
        attempt.transition(SubmissionState.SIGNED)
        return tx, budget

    async def _submit(self, attempt: SubmissionAttempt, tx: Transaction):
        self._checkpoint(attempt)
        raw = tx.serialize_checked(self.config.batch.max_tx_size_bytes)
        signature = tx.signature
        if signature not in attempt.signatures_submitted:
            attempt.signatures_submitted.append(signature)
        attempt.transition(SubmissionState.SUBMITTED)
        try:
            returned = await self._timed(self.client.submit(raw), self.config.submit_timeout, 'submit')
        except AmbiguousOutcome as e:
            # the bytes may have landed; the status check in _confirm decides
            log.warning('Submission of %s ambiguous: %s', signature, e.reason)
            return
        if returned and returned != signature:
            log.warning('Ledger returned signature %s for %s', returned, signature)

    async def _landed(self, attempt: SubmissionAttempt, signature: str) -> bool:
        """Single status check before resending identical bytes"""
        self._checkpoint(attempt)
        try:
            status = await self._timed(self.client.poll_status(signature), self.config.poll_timeout, 'poll status')
        except TxPipeError as e:
            log.debug('Status check for %s failed: %s', signature, e.reason)
            return False
        if status.kind is StatusKind.FAILED:
            raise _classified(status.reason or 'transaction failed')
        return status.kind is StatusKind.CONFIRMED

    async def _confirm(self, attempt: SubmissionAttempt, signature: str):
        cfg = self.config
        attempt.transition(SubmissionState.CONFIRMING)
        deadline = time.monotonic() + cfg.confirm_timeout
        while True:
            self._checkpoint(attempt)
            try:
                status = await self._timed(self.client.poll_status(signature), cfg.poll_timeout, 'poll status')
            except TxPipeError as e:
                log.debug('Status poll for %s failed: %s', signature, e.reason)
                status = None
            if status is not None:
                if status.kind is StatusKind.CONFIRMED:
                    return
                if status.kind is StatusKind.FAILED:
                    raise _classified(status.reason or 'transaction failed')
            if time.monotonic() >= deadline:
                raise AmbiguousOutcome(f"Confirmation of {signature} timed out after {cfg.confirm_timeout}s")
            await asyncio.sleep(cfg.poll_interval)

    async def send(
        self,
        operations: Sequence[Operation],
        tier: UrgencyTier = UrgencyTier.NORMAL,
        compute_units: Optional[int] = None,
        attempt: Optional[SubmissionAttempt] = None,
    ) -> SubmissionResult:
        """Submit operations and wait for confirmation.

        Errors are reported in the result rather than raised, except for
        invalid input (empty operations) which raises ValueError.
        """
        if not operations:
            raise ValueError('operations must not be empty')
        cfg = self.config
        policy = cfg.retry
        if policy.max_attempts < 1:
            raise ValueError('max_attempts must be >= 1')
        attempt = attempt or self.new_attempt()
        program_id = self._fee_program(operations)
        price = self.estimator.suggest(program_id, tier, cfg.network_label) if self.estimator else 0
        budget = ComputeBudget(compute_units or DEFAULT_COMPUTE_UNITS, price)

        tx: Optional[Transaction] = None
        rebuild = True
        simulate = cfg.simulate_first
        last_error: Optional[TxPipeError] = None

        def result(state: SubmissionState, error: Optional[TxPipeError] = None) -> SubmissionResult:
            return SubmissionResult(
                state=state,
                signature=tx.signature if tx is not None else None,
                attempts=attempt.attempts,
                signatures_submitted=list(attempt.signatures_submitted),
                used_resign=attempt.used_resign,
                price=budget.micro_lamports,
                error=error,
                may_have_landed=state is SubmissionState.CANCELLED and attempt.submitted,
            )

        while attempt.attempts < policy.max_attempts:
            attempt.attempts += 1
            started = time.monotonic()
            mark = len(attempt.history)
            try:
                if rebuild:
                    tx, budget = await self._prepare(attempt, operations, budget, simulate)
                    simulate = False
                    rebuild = False
                    await self._submit(attempt, tx)
                else:
                    # resend identical signed bytes, unless they already landed
                    attempt.transition(SubmissionState.SIGNED)
                    if await self._landed(attempt, tx.signature):
                        log.info('%s landed before resend', tx.signature)
                        attempt.transition(SubmissionState.SUBMITTED)
                    else:
                        await self._submit(attempt, tx)
                await self._confirm(attempt, tx.signature)
            except _Cancelled:
                attempt.transition(SubmissionState.CANCELLED)
                log.info('Submission cancelled after %d attempt(s)', attempt.attempts)
                return result(SubmissionState.CANCELLED)
            except TxPipeError as e:
                e.attempts = attempt.attempts
                last_error = e
                attempt.transition(SubmissionState.FAILED)
                if not e.recoverable:
                    log.warning('Submission failed (%s): %s', e.kind.value, e.reason)
                    return result(SubmissionState.FAILED, e)

                was_submitted = SubmissionState.SUBMITTED in attempt.history[mark:]
                if was_submitted:
                    outcome = Outcome.DROPPED if e.kind is FailureKind.FRESHNESS_EXPIRED else Outcome.TIMED_OUT
                    self._report(program_id, tier, started, outcome, budget.micro_lamports)
                if attempt.attempts >= policy.max_attempts:
                    break

                log.info(
                    'Attempt %d/%d failed (%s): %s',
                    attempt.attempts, policy.max_attempts, e.kind.value, e.reason,
                )
                if e.kind is FailureKind.FRESHNESS_EXPIRED or tx is None:
                    if tx is not None:
                        try:
                            self._check_resign()
                        except CapabilityUnsupported as denied:
                            denied.attempts = attempt.attempts
                            return result(SubmissionState.FAILED, denied)
                        attempt.used_resign = True
                        if policy.escalate_fees:
                            escalated = math.ceil(budget.micro_lamports * policy.fee_escalation_multiplier)
                            budget = budget.with_price(min(cfg.fees.max_price, escalated))
                    rebuild = True

                if policy.retry_delay > 0:
                    await asyncio.sleep(policy.retry_delay)
                if attempt.cancelled:
                    attempt.transition(SubmissionState.CANCELLED)
                    return result(SubmissionState.CANCELLED)
                attempt.transition(SubmissionState.BUILT)
                continue

            attempt.transition(SubmissionState.CONFIRMED)
            self._report(program_id, tier, started, Outcome.CONFIRMED, budget.micro_lamports)
            log.info('Confirmed %s after %d attempt(s)', tx.signature, attempt.attempts)
            return result(SubmissionState.CONFIRMED)

        attempt.transition(SubmissionState.EXHAUSTED)
        log.warning('Retry budget exhausted after %d attempt(s)', attempt.attempts)
        return result(SubmissionState.EXHAUSTED, last_error)

    async def send_planned(self, batch: PlannedBatch, tier: UrgencyTier = UrgencyTier.NORMAL) -> BatchResult:
        """BatchExecutor adapter: send one planned batch"""
        units = recommend_compute_units(
            batch.compute_units,
            self.config.compute_margin_percent,
            ceiling=self.config.batch.max_compute_units_per_tx,
        )
        res = await self.send(batch.instructions, tier, compute_units=units)
        if res.confirmed:
            return BatchSucceeded(batch.index, res.signature, batch.operation_ids)
        reason = res.error.reason if res.error is not None else res.state.value
        retryable = res.error is not None and res.error.recoverable
        return BatchFailed(batch.index, reason, batch.operation_ids, retryable)


def _classified(reason: str) -> TxPipeError:
    kind = classify_failure(reason)
    if kind is FailureKind.FRESHNESS_EXPIRED:
        return FreshnessExpired(reason)
    if kind is FailureKind.AMBIGUOUS:
        return AmbiguousOutcome(reason)
    return Rejected(reason)
