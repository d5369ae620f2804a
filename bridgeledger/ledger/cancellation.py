"""
Cancellation of awaiting bridge-out deposits.

Each deposit moves through IDLE -> SUBMITTING -> (CONFIRMED | FAILED).
While a cancel is SUBMITTING, further requests for the same deposit are
rejected locally through an in-flight id set. The set is owned by the
coordinator instance (or injected), never module-global. It guards one
process only; the chain remains the final arbiter across processes.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional, Set

from ..constants import CALL_TIMEOUT, CONFIRMATION_TIMEOUT
from ..exceptions import (
    CallTimeoutError,
    ConfirmationTimeoutError,
    ContractRevertError,
    DuplicateCancelError,
    IneligibleCancelError,
    RefreshError,
    TransportError,
    WalletNotConnectedError,
)
from ..logger import get_logger
from .records import decode_bridge_out
from .status import classify, is_cancellable
from .types import LedgerSnapshot, RecordFamily

if TYPE_CHECKING:
    from ..contracts.boundary import BridgeVaultBoundary, TransactionReceipt
    from .orchestrator import RefreshOrchestrator

logger = get_logger(__name__)


class CancelState(str, Enum):
    """Per-deposit coordinator state."""
    IDLE       = "idle"
    SUBMITTING = "submitting"
    CONFIRMED  = "confirmed"
    FAILED     = "failed"


@dataclass
class CancelOutcome:
    """
    Result of a confirmed cancellation.

    Attributes:
        deposit_id: Bridge-out deposit that was canceled
        state: Always CONFIRMED (failures raise instead)
        tx_hash: cancelBridge transaction hash
        receipt: Mined receipt
        snapshot: Ledger refreshed after confirmation, if an orchestrator
            is attached and the refresh produced one
    """
    deposit_id: int
    state: CancelState
    tx_hash: str
    receipt: Optional["TransactionReceipt"] = None
    snapshot: Optional[LedgerSnapshot] = None


class CancellationCoordinator:
    """
    Issues cancelBridge for bridge-out deposits and tracks each one.

    Args:
        boundary: Vault boundary used to read and submit
        account: Connected wallet address that signs the cancel
        orchestrator: Refreshed after a confirmed cancel
        in_flight: Shared set of deposit ids currently being canceled
        confirmation_timeout: Seconds to wait for the transaction to be mined
        precheck: Read the deposit first and reject non-Awaiting ones locally
        call_timeout: Seconds allowed for the precheck read
    """

    def __init__(
        self,
        boundary: "BridgeVaultBoundary",
        account: Optional[str],
        orchestrator: Optional["RefreshOrchestrator"] = None,
        in_flight: Optional[Set[int]] = None,
        confirmation_timeout: float = CONFIRMATION_TIMEOUT,
        precheck: bool = True,
        call_timeout: Optional[float] = CALL_TIMEOUT,
    ):
        if confirmation_timeout <= 0:
            raise ValueError("confirmation_timeout must be positive")
        self.boundary = boundary
        self.account = account
        self.orchestrator = orchestrator
        self.confirmation_timeout = confirmation_timeout
        self.precheck = precheck
        self.call_timeout = call_timeout
        self._in_flight: Set[int] = in_flight if in_flight is not None else set()
        self._states: Dict[int, CancelState] = {}

    # ── State ───────────────────────────────────────────────────────

    @property
    def in_flight(self) -> Set[int]:
        return self._in_flight

    def is_in_flight(self, deposit_id: int) -> bool:
        return int(deposit_id) in self._in_flight

    def state_of(self, deposit_id: int) -> CancelState:
        return self._states.get(int(deposit_id), CancelState.IDLE)

    # ── Steps ───────────────────────────────────────────────────────

    async def _check_eligible(self, deposit_id: int) -> None:
        request = self.boundary.get_bridge_out_record(deposit_id)
        if self.call_timeout:
            try:
                raw = await asyncio.wait_for(request, timeout=self.call_timeout)
            except asyncio.TimeoutError:
                raise CallTimeoutError(f"BRIDGE_OUT #{deposit_id} timed out after {self.call_timeout}s")
        else:
            raw = await request
        record = decode_bridge_out(raw, deposit_id)

        if record.depositor.lower() != self.account.lower():
            raise IneligibleCancelError(
                f"Deposit #{deposit_id} belongs to {record.depositor}, not {self.account}",
                deposit_id,
            )
        if not is_cancellable(RecordFamily.BRIDGE_OUT, record.status_code):
            status = classify(RecordFamily.BRIDGE_OUT, record.status_code)
            raise IneligibleCancelError(
                f"Deposit #{deposit_id} is {status.label}; only Awaiting deposits can be canceled",
                deposit_id,
            )

    async def _confirm(self, deposit_id: int, tx_hash: str) -> "TransactionReceipt":
        try:
            # Outer bound in case the boundary does not honour its own timeout
            return await asyncio.wait_for(
                self.boundary.wait_for_confirmation(tx_hash, self.confirmation_timeout),
                timeout=self.confirmation_timeout + 1.0,
            )
        except (asyncio.TimeoutError, CallTimeoutError):
            raise ConfirmationTimeoutError(
                f"Cancel of deposit #{deposit_id} not confirmed within "
                f"{self.confirmation_timeout:g}s; check status on the next refresh",
                deposit_id,
                tx_hash=tx_hash,
            )
        except TransportError as e:
            # Submitted already; surface the hash instead of a bare transport error
            raise ConfirmationTimeoutError(
                f"Cancel of deposit #{deposit_id} submitted but confirmation could not be "
                f"observed ({e}); check status on the next refresh",
                deposit_id,
                tx_hash=tx_hash,
            ) from e

    # ── Entry point ─────────────────────────────────────────────────

    async def cancel(self, deposit_id: int) -> CancelOutcome:
        """
        Cancel an Awaiting bridge-out deposit.

        Returns:
            CancelOutcome once the transaction is confirmed

        Raises:
            WalletNotConnectedError: no account to sign with
            DuplicateCancelError: a cancel for this deposit is already in flight
            IneligibleCancelError: not Awaiting, not ours, or reverted on-chain
            UserRejectedError: the signer declined
            ConfirmationTimeoutError: submitted but not seen mined in time, or
                the receipt could not be fetched; carries the tx hash
            TransportError: the boundary could not be reached
        """
        deposit_id = int(deposit_id)
        if not self.account:
            raise WalletNotConnectedError("Connect a wallet to cancel a bridge request", deposit_id)

        # Claimed before the first await so a concurrent duplicate sees it
        if deposit_id in self._in_flight:
            logger.info(f"Cancel of deposit #{deposit_id} already in flight; ignoring duplicate")
            raise DuplicateCancelError(f"Cancel of deposit #{deposit_id} is already in progress", deposit_id)
        self._in_flight.add(deposit_id)
        self._states[deposit_id] = CancelState.SUBMITTING

        try:
            if self.precheck:
                await self._check_eligible(deposit_id)

            try:
                tx_hash = await self.boundary.submit_cancel(deposit_id, self.account)
            except ContractRevertError as e:
                raise IneligibleCancelError(
                    f"Deposit #{deposit_id} cannot be canceled: {e.reason or e}", deposit_id
                ) from e

            receipt = await self._confirm(deposit_id, tx_hash)
            if not receipt.success:
                raise IneligibleCancelError(
                    f"Cancel of deposit #{deposit_id} reverted on-chain ({tx_hash})", deposit_id
                )
            self._states[deposit_id] = CancelState.CONFIRMED
        except Exception as e:
            self._states[deposit_id] = CancelState.FAILED
            logger.warning(f"Cancel of deposit #{deposit_id} failed: {type(e).__name__}: {e}")
            raise
        finally:
            if self._states.get(deposit_id) == CancelState.SUBMITTING:
                self._states[deposit_id] = CancelState.FAILED
            self._in_flight.discard(deposit_id)

        logger.info(f"Deposit #{deposit_id} canceled in block {receipt.block_number} ({tx_hash})")

        snapshot = None
        if self.orchestrator is not None:
            try:
                snapshot = await self.orchestrator.refresh(self.account)
            except RefreshError as e:
                logger.warning(f"Refresh after cancel of deposit #{deposit_id} failed: {e}")
                snapshot = e.partial

        return CancelOutcome(
            deposit_id=deposit_id,
            state=CancelState.CONFIRMED,
            tx_hash=tx_hash,
            receipt=receipt,
            snapshot=snapshot,
        )
