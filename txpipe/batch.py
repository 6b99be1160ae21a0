"""Batch planning: pack many operations into few transactions"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Union

from .account import Operation
from .address import COMPUTE_BUDGET_PROGRAM, Address
from .compute_budget import ComputeBudget
from .config import BatchConfig

log = logging.getLogger(__name__)

DEFAULT_OPERATION_UNITS = 50_000


@dataclass(frozen=True)
class BatchOperation:
    """One logical operation that may share a transaction with others"""
    id: str
    operations: Sequence[Operation]
    estimated_compute_units: int = DEFAULT_OPERATION_UNITS
    priority: int = 0
    idempotent: bool = True
    description: str = ''
    metadata: Dict[str, str] = field(default_factory=dict)

    def addresses(self) -> Set[Address]:
        return {address for op in self.operations for address in op.addresses()}


def create_operation(
    operations: Sequence[Operation],
    description: str = '',
    estimated_compute_units: int = DEFAULT_OPERATION_UNITS,
    priority: int = 0,
    idempotent: bool = True,
) -> BatchOperation:
    return BatchOperation(
        id=str(uuid.uuid4()),
        operations=tuple(operations),
        estimated_compute_units=estimated_compute_units,
        priority=priority,
        idempotent=idempotent,
        description=description,
    )


@dataclass(frozen=True)
class PlannedBatch:
    """Operations packed into one transaction"""
    index: int
    operations: Sequence[BatchOperation]
    instructions: Sequence[Operation]
    compiled_account_count: int
    compute_units: int
    estimated_cost: int
    at_capacity: bool

    @property
    def operation_ids(self) -> List[str]:
        return [op.id for op in self.operations]


@dataclass(frozen=True)
class BatchPlan:
    batches: Sequence[PlannedBatch]
    total_operations: int
    total_compute_units: int
    estimated_cost: int
    savings: int
    savings_percent: float


class BatchStrategy(Enum):
    """Ordering applied before greedy packing"""
    ARRIVAL_ORDER = 'arrival_order'
    PRIORITY_FIRST = 'priority_first'
    MINIMIZE_COMPUTE = 'minimize_compute'


class BatchPlanner:
    """First-fit greedy packer.

    Planning is O(n): operations are visited once in strategy order and a
    batch is sealed as soon as the next operation would overflow any
    ceiling. This is not optimal bin packing.
    """

    def __init__(self, config: Optional[BatchConfig] = None):
        self.config = config or BatchConfig()

    def _cost(self, compute_units: int) -> int:
        return self.config.base_fee_lamports + (self.config.default_priority_price * compute_units) // 1_000_000

    def _order(self, operations: Sequence[BatchOperation], strategy: BatchStrategy) -> List[BatchOperation]:
        # sorted() is stable, so ties keep arrival order
        if strategy is BatchStrategy.PRIORITY_FIRST:
            return sorted(operations, key=lambda op: -op.priority)
        if strategy is BatchStrategy.MINIMIZE_COMPUTE:
            return sorted(operations, key=lambda op: op.estimated_compute_units)
        return list(operations)

    def plan(
        self,
        operations: Sequence[BatchOperation],
        strategy: BatchStrategy = BatchStrategy.ARRIVAL_ORDER,
        fee_payer: Optional[Address] = None,
    ) -> BatchPlan:
        """Pack operations in strategy order.

        The account ceiling counts the fee payer, or reserves a slot for it
        when none is given, since every compiled message carries one.
        """
        cfg = self.config
        if not operations:
            return BatchPlan((), 0, 0, 0, 0, 0.0)

        reserved = cfg.reserved_budget_instructions if cfg.add_compute_budget else 0
        max_instructions = cfg.max_instructions_per_tx - reserved
        base_accounts: Set[Address] = {COMPUTE_BUDGET_PROGRAM} if cfg.add_compute_budget else set()
        max_accounts = cfg.max_accounts_per_tx
        if fee_payer is not None:
            base_accounts.add(fee_payer)
        else:
            max_accounts -= 1
        max_compute = cfg.max_compute_units_per_tx

        batches: List[PlannedBatch] = []
        current: List[BatchOperation] = []
        compute = 0
        instructions = 0
        accounts: Set[Address] = set(base_accounts)

        for op in self._order(operations, strategy):
            op_instructions = len(op.operations)
            op_accounts = op.addresses()
            if op.estimated_compute_units > max_compute:
                raise ValueError(
                    f"Operation {op.id} needs {op.estimated_compute_units} units, ceiling is {max_compute}"
                )
            if op_instructions > max_instructions or len(base_accounts | op_accounts) > max_accounts:
                raise ValueError(f"Operation {op.id} cannot fit in a single transaction")

            fits = (
                compute + op.estimated_compute_units <= max_compute
                and instructions + op_instructions <= max_instructions
                and len(accounts | op_accounts) <= max_accounts
            )
            if not fits and current:
                batches.append(self._seal(len(batches), current, accounts))
                current, compute, instructions, accounts = [], 0, 0, set(base_accounts)

            current.append(op)
            compute += op.estimated_compute_units
            instructions += op_instructions
            accounts |= op_accounts

        if current:
            batches.append(self._seal(len(batches), current, accounts))

        total_compute = sum(op.estimated_compute_units for op in operations)
        batched_cost = sum(b.estimated_cost for b in batches)
        individual_cost = len(operations) * self._cost(max_compute // 10)
        savings = individual_cost - batched_cost
        savings_percent = savings * 100.0 / individual_cost if individual_cost > 0 else 0.0

        log.debug('Planned %d operations into %d batches (%s)', len(operations), len(batches), strategy.value)
        return BatchPlan(
            batches=tuple(batches),
            total_operations=len(operations),
            total_compute_units=total_compute,
            estimated_cost=batched_cost,
            savings=savings,
            savings_percent=savings_percent,
        )

    def _seal(self, index: int, ops: List[BatchOperation], accounts: Set[Address]) -> PlannedBatch:
        compute = sum(op.estimated_compute_units for op in ops)
        return PlannedBatch(
            index=index,
            operations=tuple(ops),
            instructions=tuple(ix for op in ops for ix in op.operations),
            compiled_account_count=len(accounts),
            compute_units=compute,
            estimated_cost=self._cost(compute),
            at_capacity=compute > self.config.max_compute_units_per_tx * self.config.capacity_threshold,
        )


@dataclass(frozen=True)
class BatchSucceeded:
    batch_index: int
    signature: Optional[str]
    operation_ids: List[str]


@dataclass(frozen=True)
class BatchFailed:
    batch_index: int
    error: str
    operation_ids: List[str]
    retryable: bool = False


BatchResult = Union[BatchSucceeded, BatchFailed]


@dataclass(frozen=True)
class Started:
    total_batches: int
    total_operations: int


@dataclass(frozen=True)
class BatchStarted:
    batch_index: int
    operation_count: int


@dataclass(frozen=True)
class BatchCompleted:
    result: BatchResult


@dataclass(frozen=True)
class Progress:
    completed_batches: int
    total_batches: int
    completed_operations: int
    total_operations: int


@dataclass(frozen=True)
class AllCompleted:
    successful: int
    failed: int
    elapsed: float


BatchEvent = Union[Started, BatchStarted, BatchCompleted, Progress, AllCompleted]

SendBatch = Callable[[PlannedBatch], Awaitable[BatchResult]]


class BatchExecutor:
    """Runs a plan one batch at a time, publishing progress events.

    Events go to an asyncio.Queue; consumers iterate events() until the
    stream closes after AllCompleted.
    """

    def __init__(self, config: Optional[BatchConfig] = None, max_events: int = 0):
        self.config = config or BatchConfig()
        self._events: 'asyncio.Queue[Optional[BatchEvent]]' = asyncio.Queue(maxsize=max_events)

    @staticmethod
    def build_operations(batch: PlannedBatch, budget: Optional[ComputeBudget]) -> List[Operation]:
        """Batch instructions with compute-budget operations in front"""
        prefix = budget.to_operations() if budget is not None else []
        return prefix + list(batch.instructions)

    async def _emit(self, event: Optional[BatchEvent]):
        await self._events.put(event)

    async def events(self) -> AsyncIterator[BatchEvent]:
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    async def execute(self, plan: BatchPlan, send_batch: SendBatch) -> List[BatchResult]:
        results: List[BatchResult] = []
        if not plan.batches:
            await self._emit(None)
            return results

        started = time.monotonic()
        completed_ops = 0
        total = len(plan.batches)
        await self._emit(Started(total, plan.total_operations))
        try:
            for position, batch in enumerate(plan.batches):
                await self._emit(BatchStarted(batch.index, len(batch.operations)))
                try:
                    result = await send_batch(batch)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    log.warning('Batch %d raised: %s', batch.index, e)
                    result = BatchFailed(batch.index, str(e), batch.operation_ids)
                results.append(result)
                await self._emit(BatchCompleted(result))

                if isinstance(result, BatchSucceeded):
                    completed_ops += len(batch.operations)
                await self._emit(Progress(position + 1, total, completed_ops, plan.total_operations))

                if isinstance(result, BatchFailed) and not self.config.continue_on_failure:
                    log.info('Stopping after failed batch %d', batch.index)
                    break
                if position < total - 1 and self.config.batch_delay > 0:
                    await asyncio.sleep(self.config.batch_delay)

            ok = sum(1 for r in results if isinstance(r, BatchSucceeded))
            await self._emit(AllCompleted(ok, len(results) - ok, time.monotonic() - started))
        finally:
            await self._emit(None)
        return results
