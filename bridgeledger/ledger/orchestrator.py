"""
Refresh orchestration.

Sequences the enumerate -> fetch pipelines of the three families
concurrently, merges the results and keeps the latest snapshot plus
loading/error state for callers. Read-only against the chain.
"""

import asyncio
import time
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from ..exceptions import RefreshError
from ..logger import get_logger
from .enumerator import IdWalk, PaginatedEnumerator
from .fetcher import BatchDetailFetcher, FetchResult
from .merger import merge
from .types import FetchIssue, LedgerSnapshot, LedgerSummary, RecordFamily

if TYPE_CHECKING:
    from ..contracts.boundary import BridgeVaultBoundary

logger = get_logger(__name__)


class RefreshOrchestrator:
    """
    Top-level entry point for rebuilding a holder's ledger.

    Each ``refresh`` discards the previous ledger and rebuilds it from the
    chain. Concurrent refreshes do not share state; the last one to finish
    becomes ``last_snapshot``.

    Args:
        boundary: Vault boundary to read from
        enumerator: Optional pre-configured enumerator
        fetcher: Optional pre-configured detail fetcher
    """

    def __init__(
        self,
        boundary: "BridgeVaultBoundary",
        enumerator: Optional[PaginatedEnumerator] = None,
        fetcher: Optional[BatchDetailFetcher] = None,
    ):
        self.boundary = boundary
        self.enumerator = enumerator or PaginatedEnumerator(boundary)
        self.fetcher = fetcher or BatchDetailFetcher(boundary)
        self._active = 0
        self.last_snapshot: Optional[LedgerSnapshot] = None
        self.last_error: Optional[Exception] = None
        self.last_refreshed_at: Optional[float] = None

    # ── State ───────────────────────────────────────────────────────

    @property
    def is_loading(self) -> bool:
        return self._active > 0

    def summary(self) -> LedgerSummary:
        if self.last_snapshot is None:
            return LedgerSummary()
        return self.last_snapshot.summary()

    # ── Pipeline ────────────────────────────────────────────────────

    async def _run_family(self, family: RecordFamily, owner: str) -> Tuple[IdWalk, FetchResult]:
        walk = await self.enumerator.enumerate(family, owner)
        details = await self.fetcher.fetch_details(family, walk.ids)
        return walk, details

    @staticmethod
    def _issues_for(walk: IdWalk, details: FetchResult) -> List[FetchIssue]:
        issues = []
        if walk.truncated:
            issues.append(FetchIssue(
                family=walk.family,
                stage="enumerate",
                detail=walk.error or "id list truncated",
            ))
        if details.failed_ids:
            issues.append(FetchIssue(
                family=details.family,
                stage="details",
                detail=f"{len(details.failed_ids)} record(s) could not be fetched",
                ids=tuple(sorted(details.failed_ids)),
            ))
        return issues

    async def refresh(self, owner: str) -> LedgerSnapshot:
        """
        Rebuild the ledger for ``owner``.

        Returns:
            LedgerSnapshot sorted newest first. Contained failures are listed
            in ``issues`` and make ``complete`` False.

        Raises:
            RefreshError: every family failed on its first page, i.e. the
                boundary is unreachable. ``partial`` holds what was collected.
        """
        if not owner:
            logger.debug("refresh requested without an owner; returning empty ledger")
            return LedgerSnapshot(owner="")

        self._active += 1
        started = time.time()
        try:
            logger.info(f"Refreshing bridge history for {owner}")
            families = list(RecordFamily)
            results = await asyncio.gather(*(self._run_family(f, owner) for f in families))

            walks: Dict[RecordFamily, IdWalk] = {}
            details: Dict[RecordFamily, FetchResult] = {}
            issues: List[FetchIssue] = []
            for family, (walk, fetched) in zip(families, results):
                walks[family] = walk
                details[family] = fetched
                issues.extend(self._issues_for(walk, fetched))

            entries = merge(
                details[RecordFamily.BRIDGE_OUT].records,
                details[RecordFamily.BRIDGE_IN].records,
                details[RecordFamily.WRAP_OP].records,
            )
            snapshot = LedgerSnapshot(owner=owner, entries=entries, issues=issues)

            if all(w.truncated and w.pages == 0 for w in walks.values()):
                error = RefreshError(
                    f"Could not load history for {owner}: every family failed on its first page",
                    partial=snapshot,
                    issues=issues,
                )
                self.last_error = error
                logger.error(str(error))
                raise error

            self.last_snapshot = snapshot
            self.last_error = None
            self.last_refreshed_at = snapshot.refreshed_at

            counts = snapshot.summary()
            status = "complete" if snapshot.complete else f"INCOMPLETE ({len(issues)} issue(s))"
            logger.info(
                f"Loaded {len(snapshot)} entries for {owner} "
                f"({counts.bridge_out} bridge out, {counts.bridge_in} bridge in, "
                f"{counts.wrap_ops} wrap operations) in {time.time() - started:.2f}s, {status}"
            )
            return snapshot
        finally:
            self._active -= 1
