"""
Ledger merger.

Maps each family record onto the unified LedgerEntry shape and sorts the
union into display order. No I/O; the output depends only on the set of
input records, never on their order.
"""

from typing import Iterable, List, Optional

from .status import classify
from .types import (
    BridgeInRecord,
    BridgeOutRecord,
    FamilyRecord,
    LedgerEntry,
    RecordFamily,
    WrapOpRecord,
)


def _ref(value: str) -> Optional[str]:
    return value or None


def to_ledger_entry(record: FamilyRecord) -> LedgerEntry:
    """
    Convert a decoded family record into a LedgerEntry.

    Addresses and chain tags are carried over verbatim.
    """
    if isinstance(record, BridgeOutRecord):
        return LedgerEntry(
            id=LedgerEntry.make_id(RecordFamily.BRIDGE_OUT, record.deposit_id),
            family=RecordFamily.BRIDGE_OUT,
            family_local_id=record.deposit_id,
            amount_raw=record.amount_raw,
            status=classify(RecordFamily.BRIDGE_OUT, record.status_code),
            raw_status_code=record.status_code,
            timestamp_millis=record.timestamp * 1000,
            counterparty_address=record.receiving_address,
            remote_chain_tag=record.chain,
            proof_or_release_ref=_ref(record.release_ref),
        )
    if isinstance(record, BridgeInRecord):
        return LedgerEntry(
            id=LedgerEntry.make_id(RecordFamily.BRIDGE_IN, record.deposit_id),
            family=RecordFamily.BRIDGE_IN,
            family_local_id=record.deposit_id,
            amount_raw=record.amount_raw,
            status=classify(RecordFamily.BRIDGE_IN, record.status_code),
            raw_status_code=record.status_code,
            timestamp_millis=record.timestamp * 1000,
            counterparty_address=record.receiving_address,
            remote_chain_tag=record.chain,
            proof_or_release_ref=_ref(record.deposit_proof_ref),
        )
    if isinstance(record, WrapOpRecord):
        return LedgerEntry(
            id=LedgerEntry.make_id(RecordFamily.WRAP_OP, record.operation_id),
            family=RecordFamily.WRAP_OP,
            family_local_id=record.operation_id,
            amount_raw=record.amount_raw,
            status=classify(RecordFamily.WRAP_OP, None),
            raw_status_code=None,
            timestamp_millis=record.timestamp * 1000,
            direction=record.direction,
            block_number=record.block_number,
        )
    raise TypeError(f"Unsupported record type: {type(record).__name__}")


def sort_entries(entries: Iterable[LedgerEntry]) -> List[LedgerEntry]:
    """
    Newest first; ties go to family order (out, in, wrap) and then to the
    higher family-local id.
    """
    return sorted(entries, key=lambda e: e.sort_key, reverse=True)


def merge(
    bridge_out: Iterable[BridgeOutRecord],
    bridge_in: Iterable[BridgeInRecord],
    wraps: Iterable[WrapOpRecord],
) -> List[LedgerEntry]:
    """
    Merge the three families into one ledger sorted by timestamp descending.

    Families have no positional correspondence, so this is a sort over the
    union rather than a zip.
    """
    entries = [to_ledger_entry(r) for r in bridge_out]
    entries.extend(to_ledger_entry(r) for r in bridge_in)
    entries.extend(to_ledger_entry(r) for r in wraps)
    return sort_entries(entries)
