"""
In-memory bridge vault.

A deterministic, in-process stand-in for the vault contract. It keeps the
same per-holder append-only lists and per-family counters as the contract,
applies the cancelBridge rules (depositor only, Awaiting only), and lets
callers inject page failures, record failures, malformed payloads and
latency. Suitable for tests and offline runs, not a source of truth.
"""

import asyncio
import hashlib
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

from ..exceptions import (
    CallTimeoutError,
    ContractRevertError,
    TransportError,
    UserRejectedError,
)
from ..ledger.types import RecordFamily, WrapDirection
from .boundary import BridgeVaultBoundary, TransactionReceipt

# depositsOut status codes as stored by the contract
STATUS_AWAITING = 0
STATUS_CANCELED = 1
STATUS_LOCKED = 2
STATUS_FINALIZED = 3

GENESIS_TIMESTAMP = 1_700_000_000


class InMemoryBridgeVault(BridgeVaultBoundary):
    """
    In-memory vault. NOT connected to any chain.

    Attributes:
        page_requests: Every (family, owner, offset, limit) page served or failed
        record_requests: Every (family, id) fetch attempted
        submissions: Every (deposit_id, sender) cancel that reached the vault
        call_delay: Seconds each read sleeps before answering
        submit_delay: Seconds submit_cancel sleeps before answering
        confirmation_delay: Seconds before a submitted cancel is mined
    """

    def __init__(self, start_time: int = GENESIS_TIMESTAMP, block_time: int = 12):
        self._records: Dict[RecordFamily, Dict[int, Tuple]] = {f: {} for f in RecordFamily}
        self._holders: Dict[RecordFamily, Dict[str, List[int]]] = {
            f: defaultdict(list) for f in RecordFamily
        }
        self._counters: Dict[RecordFamily, int] = {f: 0 for f in RecordFamily}
        self._clock = start_time
        self._block_time = block_time
        self._block_number = 1
        self._pending: Dict[str, int] = {}
        self._receipts: Dict[str, TransactionReceipt] = {}

        # Fault injection
        self._page_faults: Dict[Tuple[RecordFamily, int], Exception] = {}
        self._record_faults: Dict[Tuple[RecordFamily, int], Exception] = {}
        self._corrupt: Set[Tuple[RecordFamily, int]] = set()
        self._rejecting_signers: Set[str] = set()
        self.offline = False
        self.call_delay = 0.0
        self.submit_delay = 0.0
        self.confirmation_delay = 0.0
        self.always_full_pages = False

        self.page_requests: List[Tuple[RecordFamily, str, int, int]] = []
        self.record_requests: List[Tuple[RecordFamily, int]] = []
        self.submissions: List[Tuple[int, str]] = []

    # ── Seeding ─────────────────────────────────────────────────────

    def _tick(self, timestamp: Optional[int]) -> int:
        if timestamp is None:
            self._clock += self._block_time
            return self._clock
        self._clock = max(self._clock, timestamp)
        return timestamp

    def _append(self, family: RecordFamily, holder: str, record: Tuple) -> int:
        record_id = record[0]
        self._records[family][record_id] = record
        self._holders[family][holder.lower()].append(record_id)
        self._counters[family] += 1
        self._block_number += 1
        return record_id

    def deposit_out(
        self,
        owner: str,
        amount_raw: int,
        receiving_address: str,
        chain: str = "solana",
        timestamp: Optional[int] = None,
        status: int = STATUS_AWAITING,
        release_ref: str = "",
    ) -> int:
        """Record a depositToBridgeOut by ``owner``. Returns the deposit id."""
        deposit_id = self._counters[RecordFamily.BRIDGE_OUT]
        record = (
            deposit_id, owner, int(amount_raw), receiving_address, chain,
            int(status), release_ref, self._tick(timestamp),
        )
        return self._append(RecordFamily.BRIDGE_OUT, owner, record)

    def deposit_in(
        self,
        owner: str,
        amount_raw: int,
        deposit_proof_ref: str,
        chain: str = "solana",
        receiving_address: Optional[str] = None,
        timestamp: Optional[int] = None,
        status: int = 0,
    ) -> int:
        """Record a depositToBridgeIn claimed by ``owner``. Returns the deposit id."""
        deposit_id = self._counters[RecordFamily.BRIDGE_IN]
        record = (
            deposit_id, owner, int(amount_raw), receiving_address or owner, chain,
            int(status), deposit_proof_ref, self._tick(timestamp),
        )
        return self._append(RecordFamily.BRIDGE_IN, owner, record)

    def record_wrap(
        self,
        owner: str,
        amount_raw: int,
        direction: WrapDirection = WrapDirection.WRAP,
        timestamp: Optional[int] = None,
    ) -> int:
        """Record a wrap or unwrap by ``owner``. Returns the operation id."""
        operation_id = self._counters[RecordFamily.WRAP_OP]
        record = (
            operation_id, owner, int(amount_raw), int(direction),
            self._tick(timestamp), self._block_number,
        )
        return self._append(RecordFamily.WRAP_OP, owner, record)

    def set_status(self, family: RecordFamily, record_id: int, status: int) -> None:
        """Operator-side status change (lock, finalize, invalidate)."""
        if family == RecordFamily.WRAP_OP:
            raise ValueError("Wrap operations carry no status")
        record = list(self._records[family][record_id])
        record[5] = int(status)
        self._records[family][record_id] = tuple(record)

    def status_of(self, family: RecordFamily, record_id: int) -> int:
        return self._records[family][record_id][5]

    def counter(self, family: RecordFamily) -> int:
        return self._counters[family]

    # ── Fault injection ─────────────────────────────────────────────

    def fail_page(self, family: RecordFamily, offset: int, exc: Optional[Exception] = None) -> None:
        self._page_faults[(family, offset)] = exc or TransportError(
            f"injected page failure at offset {offset}"
        )

    def fail_record(self, family: RecordFamily, record_id: int, exc: Optional[Exception] = None) -> None:
        self._record_faults[(family, record_id)] = exc or TransportError(
            f"injected fetch failure for #{record_id}"
        )

    def corrupt_record(self, family: RecordFamily, record_id: int) -> None:
        """Serve a truncated payload for this record."""
        self._corrupt.add((family, record_id))

    def reject_signatures_from(self, sender: str) -> None:
        self._rejecting_signers.add(sender.lower())

    # ── Boundary: reads ─────────────────────────────────────────────

    async def _latency(self) -> None:
        if self.offline:
            raise TransportError("vault offline")
        if self.call_delay:
            await asyncio.sleep(self.call_delay)

    async def _page(self, family: RecordFamily, owner: str, offset: int, limit: int) -> List[int]:
        self.page_requests.append((family, owner, offset, limit))
        await self._latency()
        fault = self._page_faults.get((family, offset))
        if fault is not None:
            raise fault
        if self.always_full_pages:
            return list(range(offset, offset + limit))
        ids = self._holders[family].get(owner.lower(), [])
        return list(ids[offset:offset + limit])

    async def enumerate_bridge_out_ids(self, owner: str, offset: int, limit: int) -> List[int]:
        return await self._page(RecordFamily.BRIDGE_OUT, owner, offset, limit)

    async def enumerate_bridge_in_ids(self, owner: str, offset: int, limit: int) -> List[int]:
        return await self._page(RecordFamily.BRIDGE_IN, owner, offset, limit)

    async def enumerate_wrap_op_ids(self, owner: str, offset: int, limit: int) -> List[int]:
        return await self._page(RecordFamily.WRAP_OP, owner, offset, limit)

    async def _record(self, family: RecordFamily, record_id: int) -> Tuple:
        self.record_requests.append((family, record_id))
        await self._latency()
        fault = self._record_faults.get((family, record_id))
        if fault is not None:
            raise fault
        record = self._records[family].get(record_id)
        if record is None:
            # Solidity mappings answer unset keys with zero values
            width = 6 if family == RecordFamily.WRAP_OP else 8
            return tuple(0 if i != 1 else "0x" + "0" * 40 for i in range(width))
        if (family, record_id) in self._corrupt:
            return record[:-2]
        return record

    async def get_bridge_out_record(self, deposit_id: int) -> Tuple:
        return await self._record(RecordFamily.BRIDGE_OUT, deposit_id)

    async def get_bridge_in_record(self, deposit_id: int) -> Tuple:
        return await self._record(RecordFamily.BRIDGE_IN, deposit_id)

    async def get_wrap_op_record(self, operation_id: int) -> Tuple:
        return await self._record(RecordFamily.WRAP_OP, operation_id)

    # ── Boundary: writes ────────────────────────────────────────────

    async def submit_cancel(self, deposit_id: int, sender: str) -> str:
        self.submissions.append((deposit_id, sender))
        if self.offline:
            raise TransportError("vault offline")
        if self.submit_delay:
            await asyncio.sleep(self.submit_delay)
        if sender.lower() in self._rejecting_signers:
            raise UserRejectedError("User rejected the request.", deposit_id)

        record = self._records[RecordFamily.BRIDGE_OUT].get(deposit_id)
        if record is None:
            raise ContractRevertError("execution reverted", reason="Invalid deposit")
        if record[1].lower() != sender.lower():
            raise ContractRevertError("execution reverted", reason="Not depositor")
        if record[5] != STATUS_AWAITING:
            raise ContractRevertError("execution reverted", reason="Not awaiting")

        tx_hash = "0x" + hashlib.sha256(
            f"cancel:{deposit_id}:{sender}:{len(self.submissions)}".encode("utf-8")
        ).hexdigest()
        self._pending[tx_hash] = deposit_id
        return tx_hash

    async def wait_for_confirmation(self, tx_hash: str, timeout: float) -> TransactionReceipt:
        if tx_hash in self._receipts:
            return self._receipts[tx_hash]
        if tx_hash not in self._pending:
            raise TransportError(f"unknown transaction {tx_hash}")
        if self.confirmation_delay > timeout:
            await asyncio.sleep(timeout)
            raise CallTimeoutError(f"transaction {tx_hash} not mined after {timeout}s")
        if self.confirmation_delay:
            await asyncio.sleep(self.confirmation_delay)

        deposit_id = self._pending.pop(tx_hash)
        record = list(self._records[RecordFamily.BRIDGE_OUT][deposit_id])
        success = record[5] == STATUS_AWAITING
        if success:
            record[5] = STATUS_CANCELED
            self._records[RecordFamily.BRIDGE_OUT][deposit_id] = tuple(record)
        self._block_number += 1
        receipt = TransactionReceipt(tx_hash=tx_hash, success=success, block_number=self._block_number)
        self._receipts[tx_hash] = receipt
        return receipt
