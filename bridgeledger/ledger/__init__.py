"""
Bridge history reconciliation

Provides:
  - types: Core data structures (RecordFamily, LedgerEntry, LedgerSnapshot, etc.)
  - status: Status classifier for raw on-chain status codes
  - records: Per-family decoders for raw vault tuples
  - enumerator / fetcher: Paginated id walks and batched detail reads
  - merger: Unified, totally ordered ledger
  - orchestrator: RefreshOrchestrator driving a full refresh
  - cancellation: CancellationCoordinator for awaiting bridge-out deposits
  - presentation: Display formatting helpers
"""

from .types import (
    BridgeInRecord,
    BridgeOutRecord,
    FamilyRecord,
    FetchIssue,
    LedgerEntry,
    LedgerSnapshot,
    LedgerSummary,
    RecordFamily,
    Severity,
    StatusDescriptor,
    WrapDirection,
    WrapOpRecord,
    to_token_units,
)

from .status import (
    classify,
    is_cancellable,
    is_terminal,
)

from .records import (
    decode_bridge_in,
    decode_bridge_out,
    decode_record,
    decode_wrap_op,
)

from .merger import merge, sort_entries, to_ledger_entry
from .enumerator import IdWalk, PaginatedEnumerator
from .fetcher import BatchDetailFetcher, FetchResult
from .orchestrator import RefreshOrchestrator

from .cancellation import (
    CancelOutcome,
    CancelState,
    CancellationCoordinator,
)

__all__ = [
    # Types
    "BridgeInRecord",
    "BridgeOutRecord",
    "FamilyRecord",
    "FetchIssue",
    "LedgerEntry",
    "LedgerSnapshot",
    "LedgerSummary",
    "RecordFamily",
    "Severity",
    "StatusDescriptor",
    "WrapDirection",
    "WrapOpRecord",
    "to_token_units",
    # Status
    "classify",
    "is_cancellable",
    "is_terminal",
    # Decoding
    "decode_bridge_in",
    "decode_bridge_out",
    "decode_record",
    "decode_wrap_op",
    # Pipeline
    "merge",
    "sort_entries",
    "to_ledger_entry",
    "IdWalk",
    "PaginatedEnumerator",
    "BatchDetailFetcher",
    "FetchResult",
    "RefreshOrchestrator",
    # Cancellation
    "CancelOutcome",
    "CancelState",
    "CancellationCoordinator",
]
