"""
Enumeration & Detail Fetch Test Suite

Coverage:
  - PaginatedEnumerator: completeness across page boundaries, truncation on
    page faults, page cap, per-call timeout, duplicate ids
  - BatchDetailFetcher: batching and pacing, per-record fault isolation,
    malformed payloads, timeouts
"""

import asyncio
import logging
import os
import sys
from unittest.mock import AsyncMock

import pytest

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from bridgeledger.contracts.memory import InMemoryBridgeVault
from bridgeledger.exceptions import TransportError
from bridgeledger.ledger.enumerator import PaginatedEnumerator
from bridgeledger.ledger.fetcher import BatchDetailFetcher
from bridgeledger.ledger.types import BridgeOutRecord, RecordFamily, WrapDirection


HOLDER = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
OTHER = "0x2B5AD5c4795c026514f8317c7a215E218DcCD6cF"
RECIPIENT = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
TOKEN = 10 ** 18


def seeded_vault(out_count=0, in_count=0, wrap_count=0, owner=HOLDER) -> InMemoryBridgeVault:
    vault = InMemoryBridgeVault()
    for i in range(out_count):
        vault.deposit_out(owner, (i + 1) * TOKEN, RECIPIENT)
    for i in range(in_count):
        vault.deposit_in(owner, (i + 1) * TOKEN, f"proof-{i}")
    for i in range(wrap_count):
        vault.record_wrap(owner, TOKEN, WrapDirection.WRAP if i % 2 == 0 else WrapDirection.UNWRAP)
    return vault


# ══════════════════════════════════════════════════════════════════════
#  PAGINATED ENUMERATOR
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
class TestPaginatedEnumerator:

    @pytest.mark.parametrize("count", [0, 1, 4, 5, 6, 10, 11])
    async def test_walk_is_complete(self, count):
        vault = seeded_vault(out_count=count)
        walk = await PaginatedEnumerator(vault, page_size=5).enumerate(RecordFamily.BRIDGE_OUT, HOLDER)
        assert walk.ids == list(range(count))
        assert not walk.truncated

    @pytest.mark.parametrize("page_size", [1, 7, 8, 6])
    async def test_page_sizes_around_list_length(self, page_size):
        # Holder has 7 ids: page sizes 1, N, N+1 and N-1
        vault = seeded_vault(out_count=7)
        walk = await PaginatedEnumerator(vault, page_size=page_size).enumerate(RecordFamily.BRIDGE_OUT, HOLDER)
        assert walk.ids == list(range(7))
        offsets = [offset for (_, _, offset, _) in vault.page_requests]
        assert offsets == sorted(set(offsets))
        assert all(offset % page_size == 0 for offset in offsets)

    async def test_exact_multiple_requests_trailing_empty_page(self):
        vault = seeded_vault(out_count=10)
        walk = await PaginatedEnumerator(vault, page_size=5).enumerate(RecordFamily.BRIDGE_OUT, HOLDER)
        assert [r[2] for r in vault.page_requests] == [0, 5, 10]
        assert walk.pages == 3

    async def test_short_page_stops_walk(self):
        vault = seeded_vault(out_count=7)
        await PaginatedEnumerator(vault, page_size=5).enumerate(RecordFamily.BRIDGE_OUT, HOLDER)
        assert [r[2] for r in vault.page_requests] == [0, 5]

    async def test_only_owner_ids(self):
        vault = InMemoryBridgeVault()
        vault.deposit_out(HOLDER, TOKEN, RECIPIENT)
        vault.deposit_out(OTHER, TOKEN, RECIPIENT)
        vault.deposit_out(HOLDER, TOKEN, RECIPIENT)
        walk = await PaginatedEnumerator(vault, page_size=50).enumerate(RecordFamily.BRIDGE_OUT, HOLDER)
        assert walk.ids == [0, 2]

    async def test_families_are_independent(self):
        vault = seeded_vault(out_count=2, in_count=3, wrap_count=1)
        enumerator = PaginatedEnumerator(vault, page_size=50)
        assert len(await enumerator.enumerate(RecordFamily.BRIDGE_OUT, HOLDER)) == 2
        assert len(await enumerator.enumerate(RecordFamily.BRIDGE_IN, HOLDER)) == 3
        assert len(await enumerator.enumerate(RecordFamily.WRAP_OP, HOLDER)) == 1

    async def test_page_fault_truncates_and_keeps_earlier_pages(self, caplog):
        vault = seeded_vault(out_count=12)
        vault.fail_page(RecordFamily.BRIDGE_OUT, 5)
        with caplog.at_level(logging.WARNING):
            walk = await PaginatedEnumerator(vault, page_size=5).enumerate(RecordFamily.BRIDGE_OUT, HOLDER)
        assert walk.ids == [0, 1, 2, 3, 4]
        assert walk.truncated
        assert "offset 5" in walk.error
        assert "truncated at offset 5" in caplog.text
        # Never re-requested
        assert [r[2] for r in vault.page_requests] == [0, 5]

    async def test_unexpected_page_error_truncates(self, caplog):
        vault = seeded_vault(out_count=8)
        vault.fail_page(RecordFamily.BRIDGE_OUT, 5, RuntimeError("boundary bug"))
        with caplog.at_level(logging.ERROR):
            walk = await PaginatedEnumerator(vault, page_size=5).enumerate(RecordFamily.BRIDGE_OUT, HOLDER)
        assert walk.ids == [0, 1, 2, 3, 4]
        assert walk.truncated
        assert "boundary bug" in walk.error
        assert "unexpected error" in caplog.text

    async def test_junk_id_in_page_truncates(self):
        boundary = AsyncMock()
        boundary.enumerate_ids = AsyncMock(side_effect=[[1, 2, 3], [4, "not-an-id"]])
        walk = await PaginatedEnumerator(boundary, page_size=3).enumerate(RecordFamily.BRIDGE_IN, HOLDER)
        assert walk.ids == [1, 2, 3]
        assert walk.truncated
        assert walk.pages == 1

    async def test_first_page_fault(self):
        vault = seeded_vault(out_count=3)
        vault.fail_page(RecordFamily.BRIDGE_OUT, 0)
        walk = await PaginatedEnumerator(vault, page_size=5).enumerate(RecordFamily.BRIDGE_OUT, HOLDER)
        assert walk.ids == []
        assert walk.pages == 0
        assert walk.truncated

    async def test_page_cap(self, caplog):
        vault = InMemoryBridgeVault()
        vault.always_full_pages = True
        with caplog.at_level(logging.WARNING):
            walk = await PaginatedEnumerator(vault, page_size=10, max_pages=3).enumerate(
                RecordFamily.WRAP_OP, HOLDER
            )
        assert walk.truncated
        assert walk.pages == 3
        assert len(walk.ids) == 30
        assert len(vault.page_requests) == 3
        assert "page cap" in caplog.text

    async def test_page_timeout_is_a_transport_failure(self):
        vault = seeded_vault(out_count=3)
        vault.call_delay = 0.5
        walk = await PaginatedEnumerator(vault, page_size=5, call_timeout=0.05).enumerate(
            RecordFamily.BRIDGE_OUT, HOLDER
        )
        assert walk.truncated
        assert walk.ids == []
        assert "timed out" in walk.error

    async def test_duplicate_ids_dropped(self, caplog):
        boundary = AsyncMock()
        boundary.enumerate_ids = AsyncMock(side_effect=[[1, 2, 2], [3]])
        with caplog.at_level(logging.WARNING):
            walk = await PaginatedEnumerator(boundary, page_size=3).enumerate(RecordFamily.BRIDGE_IN, HOLDER)
        assert walk.ids == [1, 2, 3]
        assert "returned twice" in caplog.text

    async def test_invalid_arguments(self):
        vault = InMemoryBridgeVault()
        with pytest.raises(ValueError):
            PaginatedEnumerator(vault, page_size=0)
        with pytest.raises(ValueError):
            PaginatedEnumerator(vault, max_pages=0)


# ══════════════════════════════════════════════════════════════════════
#  BATCH DETAIL FETCHER
# ══════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
class TestBatchDetailFetcher:

    async def test_fetches_every_id(self):
        vault = seeded_vault(out_count=23)
        fetcher = BatchDetailFetcher(vault, batch_size=10, batch_delay=0)
        result = await fetcher.fetch_details(RecordFamily.BRIDGE_OUT, list(range(23)))
        assert sorted(r.deposit_id for r in result.records) == list(range(23))
        assert all(isinstance(r, BridgeOutRecord) for r in result.records)
        assert result.batches == 3
        assert result.complete

    async def test_empty_input(self):
        result = await BatchDetailFetcher(InMemoryBridgeVault()).fetch_details(RecordFamily.BRIDGE_IN, [])
        assert result.records == []
        assert result.batches == 0

    async def test_every_third_failure_is_isolated(self, caplog):
        vault = seeded_vault(out_count=30)
        failing = [i for i in range(30) if i % 3 == 2]
        for record_id in failing:
            vault.fail_record(RecordFamily.BRIDGE_OUT, record_id)

        with caplog.at_level(logging.WARNING):
            result = await BatchDetailFetcher(vault, batch_size=10, batch_delay=0).fetch_details(
                RecordFamily.BRIDGE_OUT, list(range(30))
            )

        assert len(result.records) == 20
        assert sorted(result.failed_ids) == failing
        assert not result.complete
        for record_id in failing:
            assert f"BRIDGE_OUT #{record_id} dropped" in caplog.text

    async def test_malformed_payload_dropped(self, caplog):
        vault = seeded_vault(wrap_count=3)
        vault.corrupt_record(RecordFamily.WRAP_OP, 1)
        with caplog.at_level(logging.WARNING):
            result = await BatchDetailFetcher(vault, batch_delay=0).fetch_details(RecordFamily.WRAP_OP, [0, 1, 2])
        assert sorted(r.operation_id for r in result.records) == [0, 2]
        assert result.failed_ids == [1]
        assert "malformed payload" in caplog.text

    async def test_unset_record_dropped(self):
        vault = seeded_vault(in_count=1)
        result = await BatchDetailFetcher(vault, batch_delay=0).fetch_details(RecordFamily.BRIDGE_IN, [0, 5])
        assert [r.deposit_id for r in result.records] == [0]
        assert result.failed_ids == [5]

    async def test_duplicate_ids_fetched_once(self):
        vault = seeded_vault(out_count=2)
        result = await BatchDetailFetcher(vault, batch_delay=0).fetch_details(RecordFamily.BRIDGE_OUT, [0, 1, 1, 0])
        assert len(result.records) == 2
        assert len(vault.record_requests) == 2

    async def test_batches_are_paced(self, monkeypatch):
        vault = seeded_vault(out_count=25)
        sleeps = []
        real_sleep = asyncio.sleep

        async def fake_sleep(delay, *args, **kwargs):
            sleeps.append(delay)
            await real_sleep(0)

        monkeypatch.setattr("bridgeledger.ledger.fetcher.asyncio.sleep", fake_sleep)
        result = await BatchDetailFetcher(vault, batch_size=10, batch_delay=0.1).fetch_details(
            RecordFamily.BRIDGE_OUT, list(range(25))
        )
        assert result.batches == 3
        # Pause between batches only, none after the last
        assert sleeps == [0.1, 0.1]

    async def test_batch_concurrency_is_bounded(self):
        in_flight = 0
        peak = 0
        vault = seeded_vault(out_count=12)
        original = vault.get_record

        async def tracking_get_record(family, record_id):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            try:
                return await original(family, record_id)
            finally:
                in_flight -= 1

        vault.get_record = tracking_get_record
        result = await BatchDetailFetcher(vault, batch_size=4, batch_delay=0).fetch_details(
            RecordFamily.BRIDGE_OUT, list(range(12))
        )
        assert len(result.records) == 12
        assert peak == 4

    async def test_record_timeout_dropped(self):
        vault = seeded_vault(out_count=2)
        vault.call_delay = 0.5
        result = await BatchDetailFetcher(vault, batch_delay=0, call_timeout=0.05).fetch_details(
            RecordFamily.BRIDGE_OUT, [0, 1]
        )
        assert result.records == []
        assert sorted(result.failed_ids) == [0, 1]

    async def test_unexpected_errors_are_contained(self, caplog):
        vault = seeded_vault(out_count=2)
        vault.fail_record(RecordFamily.BRIDGE_OUT, 0, RuntimeError("boom"))
        with caplog.at_level(logging.ERROR):
            result = await BatchDetailFetcher(vault, batch_delay=0).fetch_details(RecordFamily.BRIDGE_OUT, [0, 1])
        assert [r.deposit_id for r in result.records] == [1]
        assert "unexpected error" in caplog.text

    async def test_transport_error_subclass(self):
        vault = seeded_vault(in_count=1)
        vault.fail_record(RecordFamily.BRIDGE_IN, 0, TransportError("rpc down"))
        result = await BatchDetailFetcher(vault, batch_delay=0).fetch_details(RecordFamily.BRIDGE_IN, [0])
        assert result.failed_ids == [0]
