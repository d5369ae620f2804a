"""
Bridge Ledger Types

Core data structures for reconstructing a holder's bridge history from the
bridge vault contract.

Defines:
  - RecordFamily enum for the three independent record lists
  - BridgeOutRecord / BridgeInRecord / WrapOpRecord decoded family records
  - StatusDescriptor for classified, presentation-neutral statuses
  - LedgerEntry, the unified family-tagged record
  - FetchIssue / LedgerSnapshot / LedgerSummary for refresh results
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..constants import TOKEN_DECIMALS


# ══════════════════════════════════════════════════════════════════════
#  RECORD FAMILIES
# ══════════════════════════════════════════════════════════════════════

class RecordFamily(IntEnum):
    """
    The three independent record lists kept by the vault.

    Values double as the tie-break rank when merging, so the declaration
    order is significant.
    """
    BRIDGE_OUT = 0   # Funds leaving the home chain
    BRIDGE_IN  = 1   # Funds arriving from a remote chain
    WRAP_OP    = 2   # Ancient <-> current token conversion

    @property
    def prefix(self) -> str:
        return FAMILY_PREFIXES[self]

    @property
    def display_name(self) -> str:
        return FAMILY_NAMES[self]


FAMILY_PREFIXES: Dict[RecordFamily, str] = {
    RecordFamily.BRIDGE_OUT: "out",
    RecordFamily.BRIDGE_IN: "in",
    RecordFamily.WRAP_OP: "wrap",
}

FAMILY_NAMES: Dict[RecordFamily, str] = {
    RecordFamily.BRIDGE_OUT: "Bridge Out",
    RecordFamily.BRIDGE_IN: "Bridge In",
    RecordFamily.WRAP_OP: "Wrap",
}


class WrapDirection(IntEnum):
    """operationType of an ancientWrapOperations record."""
    WRAP   = 0   # Ancient -> current
    UNWRAP = 1   # Current -> ancient


def to_token_units(amount_raw: int, decimals: int = TOKEN_DECIMALS) -> Decimal:
    """
    Convert a raw minor-unit integer into an exact Decimal token quantity.

    Built from the digit tuple rather than by division so no context
    rounding applies, whatever the size of the uint256.
    """
    sign, digits, exponent = Decimal(int(amount_raw)).as_tuple()
    return Decimal((sign, digits, exponent - decimals))


# ══════════════════════════════════════════════════════════════════════
#  CLASSIFIED STATUS
# ══════════════════════════════════════════════════════════════════════

class Severity(str, Enum):
    """Presentation-neutral severity of a classified status."""
    PENDING = "pending"    # amber
    ERROR   = "error"      # red
    INFO    = "info"       # blue
    SUCCESS = "success"    # green
    NEUTRAL = "neutral"

    @property
    def color(self) -> str:
        return SEVERITY_COLORS[self]


SEVERITY_COLORS: Dict[Severity, str] = {
    Severity.PENDING: "amber",
    Severity.ERROR: "red",
    Severity.INFO: "blue",
    Severity.SUCCESS: "green",
    Severity.NEUTRAL: "default",
}


@dataclass(frozen=True)
class StatusDescriptor:
    """
    Human-facing status triple derived from a raw on-chain status code.

    Attributes:
        label: Short status name ("Awaiting", "Finalized", ...)
        severity: Severity bucket, maps to a display color
        icon: Icon hint ("clock", "cross", "lock", "check", "question")
        tooltip: One-sentence explanation for the user
    """
    label: str
    severity: Severity
    icon: str
    tooltip: str

    @property
    def color(self) -> str:
        return self.severity.color

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "severity": self.severity.value,
            "color": self.color,
            "icon": self.icon,
            "tooltip": self.tooltip,
        }


# ══════════════════════════════════════════════════════════════════════
#  FAMILY RECORDS  (one shape per tag, decoded from boundary tuples)
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BridgeOutRecord:
    """
    A depositsOut entry: tokens locked here for release on a remote chain.

    Attributes:
        deposit_id: Id within the bridge-out family
        depositor: Home-chain address that locked the tokens
        amount_raw: Amount in minor units
        receiving_address: Remote-chain recipient (hex or base58, unvalidated)
        chain: Free-form remote network tag
        status_code: Raw on-chain status (0 awaiting, 1 canceled, 2 locked, 3 finalized)
        release_ref: Release transaction hash on the remote chain, may be empty
        timestamp: Deposit time (unix seconds)
    """
    deposit_id: int
    depositor: str
    amount_raw: int
    receiving_address: str
    chain: str
    status_code: int
    release_ref: str
    timestamp: int

    family = RecordFamily.BRIDGE_OUT

    @property
    def local_id(self) -> int:
        return self.deposit_id


@dataclass(frozen=True)
class BridgeInRecord:
    """
    A depositsIn entry: tokens arriving from a remote chain.

    Attributes:
        deposit_id: Id within the bridge-in family
        depositor: Address that submitted the claim
        amount_raw: Amount in minor units
        receiving_address: Home-chain recipient
        chain: Free-form remote network tag
        status_code: Raw on-chain status (0 awaiting, 1 finalized, 2 invalid)
        deposit_proof_ref: Externally supplied proof of the remote deposit
        timestamp: Claim time (unix seconds)
    """
    deposit_id: int
    depositor: str
    amount_raw: int
    receiving_address: str
    chain: str
    status_code: int
    deposit_proof_ref: str
    timestamp: int

    family = RecordFamily.BRIDGE_IN

    @property
    def local_id(self) -> int:
        return self.deposit_id


@dataclass(frozen=True)
class WrapOpRecord:
    """
    An ancientWrapOperations entry. Exists only once committed, so it has no
    status field.
    """
    operation_id: int
    user: str
    amount_raw: int
    direction: WrapDirection
    timestamp: int
    block_number: int

    family = RecordFamily.WRAP_OP

    @property
    def local_id(self) -> int:
        return self.operation_id


FamilyRecord = Union[BridgeOutRecord, BridgeInRecord, WrapOpRecord]


# ══════════════════════════════════════════════════════════════════════
#  LEDGER ENTRY  (unified, merged record)
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LedgerEntry:
    """
    Unified, family-tagged ledger record.

    Produced fresh on every refresh and never mutated; a status change shows
    up as a different ``raw_status_code`` for the same ``id`` on re-fetch.

    Attributes:
        id: Family-prefixed id, e.g. "out-7"
        family: Record family
        family_local_id: Id within the family, also the cancel argument
        amount_raw: Full-precision minor-unit amount
        status: Classified status descriptor
        raw_status_code: Unmodified on-chain status (None for wrap ops)
        timestamp_millis: Absolute sort key (on-chain seconds * 1000)
        counterparty_address: Destination/origin wallet, kept verbatim
        remote_chain_tag: Remote network tag (None for wrap ops)
        proof_or_release_ref: Release tx hash or deposit proof
        direction: Wrap direction (wrap ops only)
        block_number: Block the wrap op was recorded in (wrap ops only)
    """
    id: str
    family: RecordFamily
    family_local_id: int
    amount_raw: int
    status: StatusDescriptor
    raw_status_code: Optional[int]
    timestamp_millis: int
    counterparty_address: Optional[str] = None
    remote_chain_tag: Optional[str] = None
    proof_or_release_ref: Optional[str] = None
    direction: Optional[WrapDirection] = None
    block_number: Optional[int] = None

    @staticmethod
    def make_id(family: RecordFamily, family_local_id: int) -> str:
        return f"{family.prefix}-{int(family_local_id)}"

    @property
    def amount(self) -> Decimal:
        """Exact token quantity at full precision."""
        return to_token_units(self.amount_raw)

    @property
    def kind(self) -> str:
        """Display kind: "Bridge Out", "Bridge In", "Wrap" or "Unwrap"."""
        if self.family == RecordFamily.WRAP_OP and self.direction == WrapDirection.UNWRAP:
            return "Unwrap"
        return self.family.display_name

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        """Ascending key whose reverse is the display order."""
        return (self.timestamp_millis, -int(self.family), self.family_local_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "family": self.family.name,
            "kind": self.kind,
            "family_local_id": self.family_local_id,
            "amount_raw": str(self.amount_raw),
            "amount": str(self.amount),
            "status": self.status.to_dict(),
            "raw_status_code": self.raw_status_code,
            "timestamp_millis": self.timestamp_millis,
            "counterparty_address": self.counterparty_address,
            "remote_chain_tag": self.remote_chain_tag,
            "proof_or_release_ref": self.proof_or_release_ref,
            "direction": self.direction.name if self.direction is not None else None,
            "block_number": self.block_number,
        }


# ══════════════════════════════════════════════════════════════════════
#  REFRESH RESULTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FetchIssue:
    """
    A contained failure recorded during a refresh.

    Attributes:
        family: Family whose pipeline hit the problem
        stage: "enumerate" or "details"
        detail: Human-readable description
        ids: Record ids affected (details stage only)
    """
    family: RecordFamily
    stage: str
    detail: str
    ids: Tuple[int, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "family": self.family.name,
            "stage": self.stage,
            "detail": self.detail,
            "ids": list(self.ids),
        }


@dataclass(frozen=True)
class LedgerSummary:
    """Per-family counts for display."""
    bridge_out: int = 0
    bridge_in: int = 0
    wraps: int = 0
    unwraps: int = 0
    awaiting_cancel: int = 0

    @property
    def wrap_ops(self) -> int:
        return self.wraps + self.unwraps

    @property
    def total(self) -> int:
        return self.bridge_out + self.bridge_in + self.wrap_ops

    def to_dict(self) -> Dict[str, int]:
        return {
            "bridge_out": self.bridge_out,
            "bridge_in": self.bridge_in,
            "wraps": self.wraps,
            "unwraps": self.unwraps,
            "awaiting_cancel": self.awaiting_cancel,
            "total": self.total,
        }


@dataclass
class LedgerSnapshot:
    """
    Result of one refresh: the merged ledger plus anything that went wrong.

    ``complete`` is False whenever an issue was recorded, so callers can tell
    "loaded, N records" apart from "loaded, but possibly incomplete".
    """
    owner: str
    entries: Tuple[LedgerEntry, ...] = ()
    issues: List[FetchIssue] = field(default_factory=list)
    refreshed_at: float = 0.0

    def __post_init__(self):
        self.entries = tuple(self.entries)
        if self.refreshed_at == 0.0:
            self.refreshed_at = time.time()

    @property
    def complete(self) -> bool:
        return not self.issues

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(self.entries)

    def get(self, entry_id: str) -> Optional[LedgerEntry]:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def find(self, family: RecordFamily, family_local_id: int) -> Optional[LedgerEntry]:
        return self.get(LedgerEntry.make_id(family, family_local_id))

    def by_family(self, family: RecordFamily) -> List[LedgerEntry]:
        return [e for e in self.entries if e.family == family]

    def summary(self) -> LedgerSummary:
        # Local import keeps types free of classifier dependencies
        from .status import is_cancellable

        counts = {"out": 0, "in": 0, "wrap": 0, "unwrap": 0, "awaiting": 0}
        for entry in self.entries:
            if entry.family == RecordFamily.BRIDGE_OUT:
                counts["out"] += 1
                if is_cancellable(entry.family, entry.raw_status_code):
                    counts["awaiting"] += 1
            elif entry.family == RecordFamily.BRIDGE_IN:
                counts["in"] += 1
            elif entry.direction == WrapDirection.UNWRAP:
                counts["unwrap"] += 1
            else:
                counts["wrap"] += 1
        return LedgerSummary(
            bridge_out=counts["out"],
            bridge_in=counts["in"],
            wraps=counts["wrap"],
            unwraps=counts["unwrap"],
            awaiting_cancel=counts["awaiting"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "complete": self.complete,
            "refreshed_at": self.refreshed_at,
            "entries": [e.to_dict() for e in self.entries],
            "issues": [i.to_dict() for i in self.issues],
            "summary": self.summary().to_dict(),
        }
