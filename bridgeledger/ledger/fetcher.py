"""
Batched record detail fetching.

Ids are fetched in fixed-size batches: every fetch in a batch runs
concurrently, the batch is joined, and a short pause separates batches to
bound the request rate against the node. A failing id is dropped on its
own; siblings and later batches carry on.
"""

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence

from ..constants import CALL_TIMEOUT, DETAIL_BATCH_DELAY, DETAIL_BATCH_SIZE
from ..exceptions import BridgeLedgerError, CallTimeoutError, DecodeError
from ..logger import get_logger
from .records import decode_record
from .types import FamilyRecord, RecordFamily

if TYPE_CHECKING:
    from ..contracts.boundary import BridgeVaultBoundary

logger = get_logger(__name__)


@dataclass
class FetchResult:
    """
    Decoded records for one family plus the ids that could not be fetched.

    ``records`` holds at most one record per requested id, in no particular
    order.
    """
    family: RecordFamily
    records: List[FamilyRecord] = field(default_factory=list)
    failed_ids: List[int] = field(default_factory=list)
    batches: int = 0

    @property
    def complete(self) -> bool:
        return not self.failed_ids


class BatchDetailFetcher:
    """
    Fetches and decodes full records in bounded-concurrency batches.

    Args:
        boundary: Vault boundary to query
        batch_size: Fetches in flight per batch
        batch_delay: Seconds to pause between batches
        call_timeout: Seconds allowed per record fetch
    """

    def __init__(
        self,
        boundary: "BridgeVaultBoundary",
        batch_size: int = DETAIL_BATCH_SIZE,
        batch_delay: float = DETAIL_BATCH_DELAY,
        call_timeout: Optional[float] = CALL_TIMEOUT,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if batch_delay < 0:
            raise ValueError("batch_delay must be >= 0")
        self.boundary = boundary
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.call_timeout = call_timeout

    async def fetch_one(self, family: RecordFamily, record_id: int) -> FamilyRecord:
        """Fetch and decode a single record."""
        request = self.boundary.get_record(family, record_id)
        if self.call_timeout:
            try:
                raw = await asyncio.wait_for(request, timeout=self.call_timeout)
            except asyncio.TimeoutError:
                raise CallTimeoutError(
                    f"{family.name} #{record_id} timed out after {self.call_timeout}s"
                )
        else:
            raw = await request
        return decode_record(family, raw, record_id)

    async def fetch_details(self, family: RecordFamily, ids: Sequence[int]) -> FetchResult:
        """
        Fetch every id in ``ids``; failures are logged and omitted.
        """
        result = FetchResult(family=family)
        unique_ids = list(dict.fromkeys(int(i) for i in ids))

        for start in range(0, len(unique_ids), self.batch_size):
            batch = unique_ids[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.fetch_one(family, record_id) for record_id in batch),
                return_exceptions=True,
            )
            result.batches += 1

            for record_id, outcome in zip(batch, outcomes):
                if isinstance(outcome, DecodeError):
                    logger.warning(f"{family.name} #{record_id} dropped, malformed payload: {outcome}")
                    result.failed_ids.append(record_id)
                elif isinstance(outcome, BridgeLedgerError):
                    logger.warning(f"{family.name} #{record_id} dropped, fetch failed: {outcome}")
                    result.failed_ids.append(record_id)
                elif isinstance(outcome, Exception):
                    logger.error(
                        f"{family.name} #{record_id} dropped, unexpected error: {outcome!r}",
                        exc_info=outcome,
                    )
                    result.failed_ids.append(record_id)
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    result.records.append(outcome)

            if start + self.batch_size < len(unique_ids) and self.batch_delay:
                await asyncio.sleep(self.batch_delay)

        if result.failed_ids:
            logger.warning(
                f"{family.name}: fetched {len(result.records)}/{len(unique_ids)} records, "
                f"{len(result.failed_ids)} dropped"
            )
        return result
