"""
Paginated enumeration of a holder's record ids.

The vault exposes each per-holder id list only through offset/limit
queries. A walk requests consecutive pages until a short or empty page
marks the end of the list.
"""

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from ..constants import CALL_TIMEOUT, HISTORY_MAX_PAGES, HISTORY_PAGE_SIZE
from ..exceptions import BridgeLedgerError, CallTimeoutError
from ..logger import get_logger
from .types import RecordFamily

if TYPE_CHECKING:
    from ..contracts.boundary import BridgeVaultBoundary

logger = get_logger(__name__)


@dataclass
class IdWalk:
    """
    Result of walking one family's id list for one holder.

    Attributes:
        family: Family walked
        owner: Holder address
        ids: Ids in on-chain assignment order, no duplicates
        pages: Pages successfully fetched
        truncated: True if the walk stopped early (error or page cap)
        error: Human-readable reason when truncated
    """
    family: RecordFamily
    owner: str
    ids: List[int] = field(default_factory=list)
    pages: int = 0
    truncated: bool = False
    error: Optional[str] = None

    def __len__(self) -> int:
        return len(self.ids)

    def __iter__(self):
        return iter(self.ids)


class PaginatedEnumerator:
    """
    Walks per-holder id lists page by page.

    Args:
        boundary: Vault boundary to query
        page_size: Ids requested per page
        max_pages: Safety cap on pages per walk
        call_timeout: Seconds allowed per page request
    """

    def __init__(
        self,
        boundary: "BridgeVaultBoundary",
        page_size: int = HISTORY_PAGE_SIZE,
        max_pages: int = HISTORY_MAX_PAGES,
        call_timeout: Optional[float] = CALL_TIMEOUT,
    ):
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        if max_pages < 1:
            raise ValueError("max_pages must be >= 1")
        self.boundary = boundary
        self.page_size = page_size
        self.max_pages = max_pages
        self.call_timeout = call_timeout

    async def _fetch_page(self, family: RecordFamily, owner: str, offset: int) -> List[int]:
        request = self.boundary.enumerate_ids(family, owner, offset, self.page_size)
        if not self.call_timeout:
            return await request
        try:
            return await asyncio.wait_for(request, timeout=self.call_timeout)
        except asyncio.TimeoutError:
            raise CallTimeoutError(
                f"page at offset {offset} timed out after {self.call_timeout}s"
            )

    async def enumerate(self, family: RecordFamily, owner: str) -> IdWalk:
        """
        Collect every id of ``family`` held by ``owner``.

        A failing page ends the walk for this family only: ids from earlier
        pages are kept and the walk is flagged as truncated.
        """
        walk = IdWalk(family=family, owner=owner)
        seen = set()
        offset = 0

        while True:
            if walk.pages >= self.max_pages:
                walk.truncated = True
                walk.error = f"stopped after {self.max_pages} pages"
                logger.warning(
                    f"{family.name} walk for {owner} hit the {self.max_pages}-page cap "
                    f"with {len(walk.ids)} ids; results truncated"
                )
                break

            try:
                page = [int(raw_id) for raw_id in await self._fetch_page(family, owner, offset)]
            except BridgeLedgerError as e:
                walk.truncated = True
                walk.error = f"page at offset {offset} failed: {e}"
                logger.warning(
                    f"{family.name} ids for {owner} truncated at offset {offset}: {e}"
                )
                break
            except Exception as e:
                walk.truncated = True
                walk.error = f"page at offset {offset} failed: {e!r}"
                logger.error(
                    f"{family.name} ids for {owner} truncated at offset {offset}, unexpected error: {e!r}",
                    exc_info=e,
                )
                break

            walk.pages += 1
            if not page:
                break

            for record_id in page:
                if record_id in seen:
                    logger.warning(f"{family.name} id {record_id} returned twice for {owner}; ignored")
                    continue
                seen.add(record_id)
                walk.ids.append(record_id)

            if len(page) < self.page_size:
                break
            offset += self.page_size

        logger.debug(f"{family.name}: {len(walk.ids)} ids for {owner} in {walk.pages} page(s)")
        return walk
