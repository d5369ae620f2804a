"""
JSON-RPC implementation of the vault boundary.

Reads go through ``eth_call`` against the configured vault address.
cancelBridge is submitted with ``eth_sendTransaction`` from a
wallet-managed account (the wallet or node signs; no keys live here), and
confirmation is polled with ``eth_getTransactionReceipt``.
"""

import asyncio
import time
from typing import List, Tuple

from eth_utils import is_address, to_checksum_address

from ..exceptions import CallTimeoutError, ConfigurationError, TransportError
from ..contracts.abi import (
    ANCIENT_WRAP_OPERATIONS,
    CANCEL_BRIDGE,
    DEPOSITS_IN,
    DEPOSITS_OUT,
    GET_HOLDER_ANCIENT_HISTORY,
    GET_HOLDER_BRIDGE_IN_HISTORY,
    GET_HOLDER_BRIDGE_OUT_HISTORY,
    VaultFunction,
    decode_result,
    encode_call,
)
from ..contracts.boundary import BridgeVaultBoundary, TransactionReceipt
from ..logger import get_logger
from .client import JsonRpcClient

logger = get_logger(__name__)


def _quantity(value) -> int:
    """Parse a JSON-RPC quantity ("0x1a" or int). Missing means 0."""
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)


class RpcBridgeVault(BridgeVaultBoundary):
    """
    Vault boundary backed by a JSON-RPC node.

    Args:
        client: JSON-RPC client for the node
        contract_address: Deployed vault address
        poll_interval: Seconds between receipt polls
    """

    def __init__(self, client: JsonRpcClient, contract_address: str, poll_interval: float = 2.0):
        if not is_address(contract_address):
            raise ConfigurationError(f"Invalid vault address: {contract_address!r}")
        self.client = client
        self.contract_address = to_checksum_address(contract_address)
        self.poll_interval = poll_interval

    @property
    def name(self) -> str:
        return f"RpcBridgeVault({self.contract_address} @ {self.client.url})"

    async def close(self) -> None:
        await self.client.close()

    async def _read(self, function: VaultFunction, *args) -> Tuple:
        data = await self.client.eth_call(self.contract_address, encode_call(function, *args))
        if not isinstance(data, str):
            raise TransportError(f"{function.name}: eth_call returned {type(data).__name__}")
        return decode_result(function, data)

    async def _history(self, function: VaultFunction, owner: str, offset: int, limit: int) -> List[int]:
        (ids,) = await self._read(function, to_checksum_address(owner), offset, limit)
        return [int(i) for i in ids]

    # ── Paginated index queries ─────────────────────────────────────

    async def enumerate_bridge_out_ids(self, owner: str, offset: int, limit: int) -> List[int]:
        return await self._history(GET_HOLDER_BRIDGE_OUT_HISTORY, owner, offset, limit)

    async def enumerate_bridge_in_ids(self, owner: str, offset: int, limit: int) -> List[int]:
        return await self._history(GET_HOLDER_BRIDGE_IN_HISTORY, owner, offset, limit)

    async def enumerate_wrap_op_ids(self, owner: str, offset: int, limit: int) -> List[int]:
        return await self._history(GET_HOLDER_ANCIENT_HISTORY, owner, offset, limit)

    # ── Record getters ──────────────────────────────────────────────

    async def get_bridge_out_record(self, deposit_id: int) -> Tuple:
        return await self._read(DEPOSITS_OUT, deposit_id)

    async def get_bridge_in_record(self, deposit_id: int) -> Tuple:
        return await self._read(DEPOSITS_IN, deposit_id)

    async def get_wrap_op_record(self, operation_id: int) -> Tuple:
        return await self._read(ANCIENT_WRAP_OPERATIONS, operation_id)

    # ── Writes ──────────────────────────────────────────────────────

    async def submit_cancel(self, deposit_id: int, sender: str) -> str:
        tx_hash = await self.client.eth_send_transaction(
            to_checksum_address(sender),
            self.contract_address,
            encode_call(CANCEL_BRIDGE, deposit_id),
        )
        if not isinstance(tx_hash, str) or not tx_hash:
            raise TransportError(f"cancelBridge: node returned no transaction hash ({tx_hash!r})")
        logger.info(f"cancelBridge({deposit_id}) submitted from {sender}: {tx_hash}")
        return tx_hash

    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> TransactionReceipt:
        deadline = time.monotonic() + timeout
        while True:
            receipt = await self.client.eth_get_transaction_receipt(tx_hash)
            if receipt:
                # Pre-Byzantium and some L2 receipts carry no status field
                status = receipt.get("status")
                return TransactionReceipt(
                    tx_hash=tx_hash,
                    success=status is None or _quantity(status) == 1,
                    block_number=_quantity(receipt.get("blockNumber")),
                )
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise CallTimeoutError(f"transaction {tx_hash} not mined after {timeout}s")
            await asyncio.sleep(min(self.poll_interval, remaining))
