"""
Bridge Vault Boundary: read/write interface to the vault contract

The vault keeps three append-only, per-holder id lists (bridge out, bridge
in, wrap operations) and a getter per family. Every method here is a
network suspension point in real deployments.

Implementations:
  - InMemoryBridgeVault (contracts.memory): deterministic, in-process
  - RpcBridgeVault (rpc.vault): JSON-RPC against a live node
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..ledger.types import RecordFamily


@dataclass(frozen=True)
class TransactionReceipt:
    """
    Minimal receipt for a confirmed transaction.

    Attributes:
        tx_hash: Transaction hash
        success: False when the transaction reverted
        block_number: Block the transaction was included in
    """
    tx_hash: str
    success: bool
    block_number: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "success": self.success,
            "block_number": self.block_number,
        }


class BridgeVaultBoundary(ABC):
    """
    Abstract read/write boundary to the bridge vault.

    Reads are safe to issue concurrently. Writes are submitted on behalf of a
    wallet-managed account; the boundary never handles keys.
    """

    # ── Paginated index queries ─────────────────────────────────────

    @abstractmethod
    async def enumerate_bridge_out_ids(self, owner: str, offset: int, limit: int) -> List[int]:
        """getHolderBridgeOutHistory(owner, offset, limit)."""
        ...

    @abstractmethod
    async def enumerate_bridge_in_ids(self, owner: str, offset: int, limit: int) -> List[int]:
        """getHolderBridgeInHistory(owner, offset, limit)."""
        ...

    @abstractmethod
    async def enumerate_wrap_op_ids(self, owner: str, offset: int, limit: int) -> List[int]:
        """getHolderAncientHistory(owner, offset, limit)."""
        ...

    # ── Record getters ──────────────────────────────────────────────

    @abstractmethod
    async def get_bridge_out_record(self, deposit_id: int) -> Tuple:
        """
        depositsOut(id) ->
        (id, depositor, amount, counterparty, chain, status, txRelease, timestamp)
        """
        ...

    @abstractmethod
    async def get_bridge_in_record(self, deposit_id: int) -> Tuple:
        """
        depositsIn(id) ->
        (id, depositor, amount, counterparty, chain, status, txDepositProof, timestamp)
        """
        ...

    @abstractmethod
    async def get_wrap_op_record(self, operation_id: int) -> Tuple:
        """
        ancientWrapOperations(id) ->
        (id, user, amount, operationType, timestamp, blockNumber)
        """
        ...

    # ── Writes ──────────────────────────────────────────────────────

    @abstractmethod
    async def submit_cancel(self, deposit_id: int, sender: str) -> str:
        """
        Submit cancelBridge(deposit_id) from ``sender``.

        Returns:
            Transaction hash. Not final until confirmed.

        Raises:
            UserRejectedError: the signer declined
            ContractRevertError: the call reverts (e.g. not Awaiting)
            TransportError: the node could not be reached
        """
        ...

    @abstractmethod
    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> TransactionReceipt:
        """
        Wait until ``tx_hash`` is mined.

        Raises:
            CallTimeoutError: not mined within ``timeout`` seconds
        """
        ...

    # ── Family dispatch ─────────────────────────────────────────────

    async def enumerate_ids(
        self,
        family: RecordFamily,
        owner: str,
        offset: int,
        limit: int,
    ) -> List[int]:
        """Route a page request to the family's index query."""
        if family == RecordFamily.BRIDGE_OUT:
            return await self.enumerate_bridge_out_ids(owner, offset, limit)
        if family == RecordFamily.BRIDGE_IN:
            return await self.enumerate_bridge_in_ids(owner, offset, limit)
        return await self.enumerate_wrap_op_ids(owner, offset, limit)

    async def get_record(self, family: RecordFamily, record_id: int) -> Tuple:
        """Route a record fetch to the family's getter."""
        if family == RecordFamily.BRIDGE_OUT:
            return await self.get_bridge_out_record(record_id)
        if family == RecordFamily.BRIDGE_IN:
            return await self.get_bridge_in_record(record_id)
        return await self.get_wrap_op_record(record_id)

    @property
    def name(self) -> str:
        return type(self).__name__

    async def close(self) -> None:
        """Release transport resources. No-op by default."""
        return None
