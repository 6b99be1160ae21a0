"""JSON-RPC ledger client"""

import base64
import logging
from typing import Any, Dict, Optional

import base58
import httpx

from .address import Address
from .errors import AmbiguousOutcome, RpcError
from .interfaces import SimulationResult, SubmissionStatus

log = logging.getLogger(__name__)

_CONFIRMED_LEVELS = ('confirmed', 'finalized')


class LedgerRpcClient:
    """LedgerClient over a Solana-style JSON-RPC endpoint"""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30,
        commitment: str = 'confirmed',
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.commitment = commitment
        self._transport = transport
        self._request_id = 1
        self.last_valid_block_height: Optional[int] = None

    async def _call(self, method: str, params: Optional[Any] = None) -> Any:
        """Make an RPC call"""
        request = {
            'jsonrpc': '2.0',
            'id': self._request_id,
            'method': method,
            'params': params if params is not None else [],
        }
        self._request_id += 1

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(self.rpc_url, json=request)
                response.raise_for_status()
            except httpx.HTTPError as e:
                # the request may or may not have reached the node
                raise AmbiguousOutcome(f"{method} failed: {e}") from e

            result = response.json()

            if 'error' in result:
                error = result['error']
                log.debug('RPC %s failed: %s', method, error)
                raise RpcError(error['code'], error['message'])

            return result.get('result')

    async def get_slot(self) -> int:
        """Get current slot"""
        return await self._call('getSlot', [{'commitment': self.commitment}])

    async def get_block_height(self) -> int:
        """Get current block height"""
        return await self._call('getBlockHeight', [{'commitment': self.commitment}])

    async def fetch_freshness_token(self) -> bytes:
        """Latest blockhash as raw bytes"""
        result = await self._call('getLatestBlockhash', [{'commitment': self.commitment}])
        value = result['value']
        self.last_valid_block_height = value.get('lastValidBlockHeight')
        return base58.b58decode(value['blockhash'])

    async def simulate(self, tx_bytes: bytes) -> SimulationResult:
        config = {
            'encoding': 'base64',
            'sigVerify': False,
            'commitment': self.commitment,
        }
        result = await self._call('simulateTransaction', [_b64(tx_bytes), config])
        value = result['value']
        err = value.get('err')
        return SimulationResult(
            success=err is None,
            logs=list(value.get('logs') or []),
            units_consumed=int(value.get('unitsConsumed') or 0),
            error=None if err is None else str(err),
        )

    async def submit(self, tx_bytes: bytes) -> str:
        """Send signed bytes; returns the transaction signature"""
        config = {
            'encoding': 'base64',
            'skipPreflight': False,
            'preflightCommitment': self.commitment,
            'maxRetries': 0,
        }
        return await self._call('sendTransaction', [_b64(tx_bytes), config])

    async def poll_status(self, submission_id: str) -> SubmissionStatus:
        result = await self._call(
            'getSignatureStatuses',
            [[submission_id], {'searchTransactionHistory': True}],
        )
        status: Optional[Dict[str, Any]] = result['value'][0]
        if status is None:
            return SubmissionStatus.pending()
        if status.get('err') is not None:
            return SubmissionStatus.failed(str(status['err']))
        if status.get('confirmationStatus') in _CONFIRMED_LEVELS:
            return SubmissionStatus.confirmed()
        return SubmissionStatus.pending()

    async def fetch_account_data(self, address: Address) -> Optional[bytes]:
        result = await self._call('getAccountInfo', [str(address), {'encoding': 'base64'}])
        value = result.get('value') if result else None
        if value is None:
            return None
        return base64.b64decode(value['data'][0])


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode('ascii')
