"""Example: Send a single transfer with priority fees and retries"""

import asyncio

from txpipe import (
    Keypair,
    KeypairSigner,
    LedgerRpcClient,
    PipelineConfig,
    PriorityFeeEstimator,
    RetryPolicy,
    SubmissionPipeline,
    UrgencyTier,
    setup_logging,
)
from txpipe.account import Operation, signer_writable, writable
from txpipe.address import SYSTEM_PROGRAM
from txpipe.encoding import encode_u32, encode_u64


async def main():
    setup_logging()

    client = LedgerRpcClient('http://localhost:8899')
    payer = Keypair()
    recipient = Keypair()

    config = PipelineConfig(
        simulate_first=True,
        retry=RetryPolicy(max_attempts=5, escalate_fees=True),
    )
    pipeline = SubmissionPipeline(
        client,
        [KeypairSigner([payer])],
        fee_payer=payer.address,
        estimator=PriorityFeeEstimator(config.fees),
        config=config,
    )

    op = Operation(
        SYSTEM_PROGRAM,
        (signer_writable(payer.address), writable(recipient.address)),
        encode_u32(2) + encode_u64(5_000_000),
    )

    print(f"Sending from {payer.address} to {recipient.address}...")
    result = await pipeline.send([op], UrgencyTier.URGENT)
    print(f"State: {result.state.value}")
    print(f"Signature: {result.signature}")
    print(f"Attempts: {result.attempts}, re-signed: {result.used_resign}")
    print(f"Priority price: {result.price} micro-lamports/unit")
    if result.error is not None:
        print(f"Error ({result.error.kind.value}): {result.error.reason}")


if __name__ == '__main__':
    asyncio.run(main())
