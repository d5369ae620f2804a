"""
Refresh & Cancellation Test Suite

Coverage:
  - RefreshOrchestrator: merged snapshots, partial failures, total
    connectivity loss, loading state
  - CancellationCoordinator: happy path, in-flight guard, eligibility
    precheck, chain rejection, signer refusal, confirmation timeout
  - End-to-end: refresh, cancel, refresh shows Canceled
"""

import asyncio
import os
import sys
from unittest.mock import AsyncMock

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from bridgeledger.contracts.boundary import TransactionReceipt
from bridgeledger.contracts.memory import (
    STATUS_CANCELED,
    STATUS_LOCKED,
    InMemoryBridgeVault,
)
from bridgeledger.exceptions import (
    ConfirmationTimeoutError,
    DuplicateCancelError,
    IneligibleCancelError,
    RefreshError,
    TransportError,
    UserRejectedError,
    WalletNotConnectedError,
)
from bridgeledger.ledger.cancellation import CancellationCoordinator, CancelState
from bridgeledger.ledger.enumerator import PaginatedEnumerator
from bridgeledger.ledger.fetcher import BatchDetailFetcher
from bridgeledger.ledger.orchestrator import RefreshOrchestrator
from bridgeledger.ledger.types import RecordFamily, WrapDirection


HOLDER = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
OTHER = "0x2B5AD5c4795c026514f8317c7a215E218DcCD6cF"
RECIPIENT = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
TOKEN = 10 ** 18


def make_orchestrator(vault, page_size=50) -> RefreshOrchestrator:
    return RefreshOrchestrator(
        vault,
        enumerator=PaginatedEnumerator(vault, page_size=page_size),
        fetcher=BatchDetailFetcher(vault, batch_delay=0),
    )


def scenario_vault() -> InMemoryBridgeVault:
    """Two bridge-out deposits and one wrap for HOLDER."""
    vault = InMemoryBridgeVault()
    vault.deposit_out(HOLDER, 100 * TOKEN, RECIPIENT, timestamp=1_700_000_100)
    vault.deposit_out(HOLDER, 250 * TOKEN, RECIPIENT, timestamp=1_700_000_200)
    vault.record_wrap(HOLDER, 10 * TOKEN, WrapDirection.WRAP, timestamp=1_700_000_150)
    return vault


# ══════════════════════════════════════════════════════════════════════
#  REFRESH ORCHESTRATOR
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
class TestRefreshOrchestrator:

    async def test_refresh_merges_all_families(self):
        vault = scenario_vault()
        vault.deposit_in(HOLDER, 5 * TOKEN, "proof-abc", timestamp=1_700_000_300)
        snapshot = await make_orchestrator(vault).refresh(HOLDER)

        assert [e.id for e in snapshot] == ["in-0", "out-1", "wrap-0", "out-0"]
        assert snapshot.complete
        assert snapshot.owner == HOLDER
        summary = snapshot.summary()
        assert summary.bridge_out == 2
        assert summary.bridge_in == 1
        assert summary.wraps == 1
        assert summary.awaiting_cancel == 2

    async def test_empty_owner_returns_empty_snapshot(self):
        vault = scenario_vault()
        snapshot = await make_orchestrator(vault).refresh("")
        assert len(snapshot) == 0
        assert vault.page_requests == []

    async def test_account_without_records(self):
        snapshot = await make_orchestrator(scenario_vault()).refresh(OTHER)
        assert len(snapshot) == 0
        assert snapshot.complete

    async def test_pagination_across_many_pages(self):
        vault = InMemoryBridgeVault()
        for _ in range(23):
            vault.deposit_out(HOLDER, TOKEN, RECIPIENT)
        snapshot = await make_orchestrator(vault, page_size=5).refresh(HOLDER)
        assert sorted(e.family_local_id for e in snapshot) == list(range(23))

    async def test_page_failure_in_one_family_is_contained(self):
        vault = scenario_vault()
        vault.deposit_in(HOLDER, TOKEN, "proof")
        vault.fail_page(RecordFamily.BRIDGE_OUT, 0)
        orchestrator = make_orchestrator(vault)
        snapshot = await orchestrator.refresh(HOLDER)

        assert [e.family for e in snapshot] == [RecordFamily.BRIDGE_IN, RecordFamily.WRAP_OP]
        assert not snapshot.complete
        assert [(i.family, i.stage) for i in snapshot.issues] == [(RecordFamily.BRIDGE_OUT, "enumerate")]
        assert orchestrator.last_error is None

    async def test_unexpected_page_error_is_contained(self):
        vault = InMemoryBridgeVault()
        vault.deposit_out(HOLDER, TOKEN, RECIPIENT)
        vault.deposit_in(HOLDER, TOKEN, "proof")
        vault.fail_page(RecordFamily.BRIDGE_IN, 0, RuntimeError("boundary bug"))
        snapshot = await make_orchestrator(vault).refresh(HOLDER)

        assert [e.id for e in snapshot] == ["out-0"]
        assert not snapshot.complete
        assert [(i.family, i.stage) for i in snapshot.issues] == [(RecordFamily.BRIDGE_IN, "enumerate")]

    async def test_record_failure_reported_as_issue(self):
        vault = scenario_vault()
        vault.fail_record(RecordFamily.BRIDGE_OUT, 1)
        snapshot = await make_orchestrator(vault).refresh(HOLDER)
        assert snapshot.get("out-1") is None
        assert snapshot.get("out-0") is not None
        issue = snapshot.issues[0]
        assert issue.stage == "details"
        assert issue.ids == (1,)

    async def test_total_connectivity_loss_raises(self):
        vault = scenario_vault()
        vault.offline = True
        orchestrator = make_orchestrator(vault)
        with pytest.raises(RefreshError) as exc_info:
            await orchestrator.refresh(HOLDER)

        error = exc_info.value
        assert error.partial is not None
        assert len(error.partial) == 0
        assert len(error.issues) == 3
        assert orchestrator.last_error is error
        assert orchestrator.last_snapshot is None
        assert not orchestrator.is_loading

    async def test_last_snapshot_and_summary(self):
        orchestrator = make_orchestrator(scenario_vault())
        assert orchestrator.summary().total == 0
        snapshot = await orchestrator.refresh(HOLDER)
        assert orchestrator.last_snapshot is snapshot
        assert orchestrator.last_refreshed_at == snapshot.refreshed_at
        assert orchestrator.summary().total == 3

    async def test_is_loading_during_refresh(self):
        vault = scenario_vault()
        vault.call_delay = 0.02
        orchestrator = make_orchestrator(vault)
        task = asyncio.create_task(orchestrator.refresh(HOLDER))
        await asyncio.sleep(0.005)
        assert orchestrator.is_loading
        await task
        assert not orchestrator.is_loading

    async def test_refresh_does_not_reuse_previous_entries(self):
        vault = scenario_vault()
        orchestrator = make_orchestrator(vault)
        first = await orchestrator.refresh(HOLDER)
        vault.set_status(RecordFamily.BRIDGE_OUT, 0, STATUS_LOCKED)
        second = await orchestrator.refresh(HOLDER)
        assert first.get("out-0").status.label == "Awaiting"
        assert second.get("out-0").status.label == "Locked"


# ══════════════════════════════════════════════════════════════════════
#  CANCELLATION COORDINATOR
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
class TestCancellationCoordinator:

    async def test_cancel_confirms_and_refreshes(self):
        vault = scenario_vault()
        orchestrator = make_orchestrator(vault)
        coordinator = CancellationCoordinator(vault, HOLDER, orchestrator=orchestrator)

        outcome = await coordinator.cancel(1)

        assert outcome.state == CancelState.CONFIRMED
        assert outcome.tx_hash.startswith("0x")
        assert outcome.receipt.success
        assert vault.status_of(RecordFamily.BRIDGE_OUT, 1) == STATUS_CANCELED
        assert outcome.snapshot.get("out-1").status.label == "Canceled"
        assert coordinator.state_of(1) == CancelState.CONFIRMED
        assert not coordinator.is_in_flight(1)

    async def test_state_defaults_to_idle(self):
        coordinator = CancellationCoordinator(InMemoryBridgeVault(), HOLDER)
        assert coordinator.state_of(42) == CancelState.IDLE

    async def test_concurrent_duplicate_rejected(self):
        vault = InMemoryBridgeVault()
        for _ in range(8):
            vault.deposit_out(HOLDER, TOKEN, RECIPIENT)
        vault.confirmation_delay = 0.05
        coordinator = CancellationCoordinator(vault, HOLDER)

        first, second = await asyncio.gather(
            coordinator.cancel(7), coordinator.cancel(7), return_exceptions=True
        )

        assert first.state == CancelState.CONFIRMED
        assert isinstance(second, DuplicateCancelError)
        assert second.deposit_id == 7
        assert vault.submissions == [(7, HOLDER)]
        assert coordinator.in_flight == set()

    async def test_duplicate_does_not_touch_boundary(self):
        boundary = AsyncMock()
        coordinator = CancellationCoordinator(boundary, HOLDER, in_flight={3})
        with pytest.raises(DuplicateCancelError):
            await coordinator.cancel(3)
        boundary.get_bridge_out_record.assert_not_called()
        boundary.submit_cancel.assert_not_called()
        # Someone else owns the claim
        assert coordinator.in_flight == {3}

    async def test_shared_in_flight_set_across_coordinators(self):
        vault = scenario_vault()
        vault.confirmation_delay = 0.05
        shared = set()
        a = CancellationCoordinator(vault, HOLDER, in_flight=shared)
        b = CancellationCoordinator(vault, HOLDER, in_flight=shared)

        results = await asyncio.gather(a.cancel(0), b.cancel(0), return_exceptions=True)

        assert sum(isinstance(r, DuplicateCancelError) for r in results) == 1
        assert len(vault.submissions) == 1
        assert shared == set()

    async def test_ineligible_status_rejected_before_submit(self):
        vault = scenario_vault()
        vault.set_status(RecordFamily.BRIDGE_OUT, 0, STATUS_LOCKED)
        coordinator = CancellationCoordinator(vault, HOLDER)

        with pytest.raises(IneligibleCancelError, match="Locked"):
            await coordinator.cancel(0)

        assert vault.submissions == []
        assert coordinator.state_of(0) == CancelState.FAILED
        assert not coordinator.is_in_flight(0)

    async def test_not_depositor_rejected(self):
        vault = scenario_vault()
        coordinator = CancellationCoordinator(vault, OTHER)
        with pytest.raises(IneligibleCancelError, match="belongs to"):
            await coordinator.cancel(0)
        assert vault.submissions == []

    async def test_chain_revert_maps_to_ineligible(self):
        vault = scenario_vault()
        vault.set_status(RecordFamily.BRIDGE_OUT, 0, STATUS_CANCELED)
        coordinator = CancellationCoordinator(vault, HOLDER, precheck=False)

        with pytest.raises(IneligibleCancelError, match="Not awaiting"):
            await coordinator.cancel(0)

        assert vault.submissions == [(0, HOLDER)]
        assert coordinator.state_of(0) == CancelState.FAILED

    async def test_failed_receipt_maps_to_ineligible(self):
        boundary = AsyncMock()
        boundary.submit_cancel.return_value = "0xdead"
        boundary.wait_for_confirmation.return_value = TransactionReceipt(
            tx_hash="0xdead", success=False, block_number=9
        )
        coordinator = CancellationCoordinator(boundary, HOLDER, precheck=False)
        with pytest.raises(IneligibleCancelError, match="reverted"):
            await coordinator.cancel(2)
        assert coordinator.state_of(2) == CancelState.FAILED

    async def test_user_rejection_propagates(self):
        vault = scenario_vault()
        vault.reject_signatures_from(HOLDER)
        coordinator = CancellationCoordinator(vault, HOLDER)

        with pytest.raises(UserRejectedError):
            await coordinator.cancel(0)

        assert vault.status_of(RecordFamily.BRIDGE_OUT, 0) == 0
        assert coordinator.state_of(0) == CancelState.FAILED
        assert coordinator.in_flight == set()

    async def test_confirmation_timeout(self):
        vault = scenario_vault()
        vault.confirmation_delay = 5.0
        coordinator = CancellationCoordinator(vault, HOLDER, confirmation_timeout=0.05)

        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            await coordinator.cancel(0)

        error = exc_info.value
        assert error.retryable
        assert error.tx_hash.startswith("0x")
        # Not resubmitted
        assert len(vault.submissions) == 1
        assert coordinator.state_of(0) == CancelState.FAILED
        assert not coordinator.is_in_flight(0)

    async def test_receipt_poll_failure_keeps_tx_hash(self):
        vault = scenario_vault()
        vault.wait_for_confirmation = AsyncMock(
            side_effect=TransportError("eth_getTransactionReceipt: timed out")
        )
        coordinator = CancellationCoordinator(vault, HOLDER)

        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            await coordinator.cancel(0)

        error = exc_info.value
        assert error.retryable
        assert error.tx_hash.startswith("0x")
        assert isinstance(error.__cause__, TransportError)
        assert len(vault.submissions) == 1
        assert coordinator.state_of(0) == CancelState.FAILED
        assert not coordinator.is_in_flight(0)

    async def test_task_cancellation_marks_failed(self):
        vault = scenario_vault()
        vault.confirmation_delay = 5.0
        coordinator = CancellationCoordinator(vault, HOLDER, confirmation_timeout=10)

        task = asyncio.create_task(coordinator.cancel(0))
        while not vault.submissions:
            await asyncio.sleep(0.001)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert coordinator.state_of(0) == CancelState.FAILED
        assert coordinator.in_flight == set()

    async def test_wallet_not_connected(self):
        vault = scenario_vault()
        coordinator = CancellationCoordinator(vault, None)
        with pytest.raises(WalletNotConnectedError):
            await coordinator.cancel(0)
        assert vault.submissions == []
        assert vault.record_requests == []

    async def test_transport_failure_releases_claim(self):
        vault = scenario_vault()
        vault.offline = True
        coordinator = CancellationCoordinator(vault, HOLDER)
        with pytest.raises(TransportError):
            await coordinator.cancel(0)
        assert coordinator.in_flight == set()
        assert coordinator.state_of(0) == CancelState.FAILED

    async def test_retry_after_failure_is_allowed(self):
        vault = scenario_vault()
        vault.offline = True
        coordinator = CancellationCoordinator(vault, HOLDER)
        with pytest.raises(TransportError):
            await coordinator.cancel(0)
        vault.offline = False
        outcome = await coordinator.cancel(0)
        assert outcome.state == CancelState.CONFIRMED

    async def test_refresh_failure_after_confirm_keeps_outcome(self):
        vault = scenario_vault()
        orchestrator = make_orchestrator(vault)
        orchestrator.refresh = AsyncMock(side_effect=RefreshError("down", partial=None))
        coordinator = CancellationCoordinator(vault, HOLDER, orchestrator=orchestrator)
        outcome = await coordinator.cancel(0)
        assert outcome.state == CancelState.CONFIRMED
        assert outcome.snapshot is None
        orchestrator.refresh.assert_awaited_once_with(HOLDER)

    async def test_invalid_timeout(self):
        with pytest.raises(ValueError):
            CancellationCoordinator(InMemoryBridgeVault(), HOLDER, confirmation_timeout=0)


# ══════════════════════════════════════════════════════════════════════
#  END TO END
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
class TestEndToEnd:

    async def test_refresh_cancel_refresh(self):
        vault = scenario_vault()
        orchestrator = make_orchestrator(vault)

        before = await orchestrator.refresh(HOLDER)
        assert [e.id for e in before] == ["out-1", "wrap-0", "out-0"]
        assert before.get("out-0").status.label == "Awaiting"
        assert before.get("wrap-0").status.label == "Finalized"

        coordinator = CancellationCoordinator(vault, HOLDER, orchestrator=orchestrator)
        outcome = await coordinator.cancel(0)

        after = outcome.snapshot
        assert after is orchestrator.last_snapshot
        assert after.get("out-0").status.label == "Canceled"
        assert after.get("out-0").raw_status_code == STATUS_CANCELED
        assert after.get("out-1").status.label == "Awaiting"
        assert [e.id for e in after] == [e.id for e in before]
        assert after.summary().awaiting_cancel == 1
