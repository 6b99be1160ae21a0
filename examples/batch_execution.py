"""Example: Pack many transfers into few transactions and send them in order"""

import asyncio

from txpipe import (
    BatchExecutor,
    BatchPlanner,
    BatchStrategy,
    Keypair,
    KeypairSigner,
    LedgerRpcClient,
    PriorityFeeEstimator,
    SubmissionPipeline,
    create_operation,
    setup_logging,
)
from txpipe.batch import AllCompleted, BatchCompleted, Progress
from txpipe.account import Operation, signer_writable, writable
from txpipe.address import SYSTEM_PROGRAM
from txpipe.encoding import encode_u32, encode_u64


def transfer(source, destination, lamports):
    return Operation(
        SYSTEM_PROGRAM,
        (signer_writable(source), writable(destination)),
        encode_u32(2) + encode_u64(lamports),
    )


async def watch(executor):
    async for event in executor.events():
        if isinstance(event, BatchCompleted):
            print(f"  batch {event.result.batch_index}: {type(event.result).__name__}")
        elif isinstance(event, Progress):
            print(f"  {event.completed_operations}/{event.total_operations} operations done")
        elif isinstance(event, AllCompleted):
            print(f"Done: {event.successful} ok, {event.failed} failed in {event.elapsed:.1f}s")


async def main():
    setup_logging()

    client = LedgerRpcClient('http://localhost:8899')
    payer = Keypair()
    recipients = [Keypair().address for _ in range(40)]

    # One operation per recipient
    operations = [
        create_operation(
            [transfer(payer.address, recipient, 1_000)],
            description=f'pay {recipient}',
            estimated_compute_units=3_000,
            priority=i % 3,
        )
        for i, recipient in enumerate(recipients)
    ]

    plan = BatchPlanner().plan(operations, BatchStrategy.PRIORITY_FIRST, fee_payer=payer.address)
    print(f"{plan.total_operations} operations in {len(plan.batches)} batches")
    print(f"Estimated cost: {plan.estimated_cost} lamports (saves {plan.savings_percent:.1f}%)")

    pipeline = SubmissionPipeline(
        client,
        [KeypairSigner([payer])],
        fee_payer=payer.address,
        estimator=PriorityFeeEstimator(),
    )
    executor = BatchExecutor()
    watcher = asyncio.create_task(watch(executor))
    await executor.execute(plan, pipeline.send_planned)
    await watcher


if __name__ == '__main__':
    asyncio.run(main())
