"""
Display helpers for ledger entries.

Entries keep raw integer amounts and verbatim chain data; rounding,
shortening and link building happen only here.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Dict, List, Optional

from ..constants import DISPLAY_DECIMALS, TOKEN_DECIMALS
from .types import LedgerEntry, LedgerSummary, RecordFamily, to_token_units

BASE_EXPLORER = "https://basescan.org"
SOLANA_EXPLORER = "https://solscan.io"

# Enough digits for any uint256 at 18 decimals
_DISPLAY_PRECISION = 100


def format_amount(amount_raw: int, decimals: int = TOKEN_DECIMALS, places: int = DISPLAY_DECIMALS) -> str:
    """
    Format a raw minor-unit amount for display.

    >>> format_amount(1234567 * 10**15)
    '1,234.57'
    """
    value = to_token_units(amount_raw, decimals)
    with localcontext() as ctx:
        ctx.prec = _DISPLAY_PRECISION
        quantized = value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    return f"{quantized:,.{places}f}"


def short_address(address: Optional[str], head: int = 8, tail: int = 8) -> str:
    """Shorten long addresses to ``head...tail``; short ones are returned as-is."""
    if not address:
        return "-"
    if len(address) <= head + tail + 4:
        return address
    return f"{address[:head]}...{address[-tail:]}"


def _explorer_base(value: str) -> str:
    return BASE_EXPLORER if value.startswith("0x") else SOLANA_EXPLORER


def address_url(address: str) -> str:
    """Explorer link for an address: basescan for hex, solscan otherwise."""
    return f"{_explorer_base(address)}/address/{address}"


def tx_url(tx_hash: str) -> str:
    return f"{_explorer_base(tx_hash)}/tx/{tx_hash}"


def block_url(block_number: int) -> str:
    return f"{BASE_EXPLORER}/block/{block_number}"


def display_chain(tag: Optional[str]) -> str:
    return tag.upper() if tag else "-"


def format_timestamp(timestamp_millis: int) -> str:
    if not timestamp_millis:
        return "-"
    moment = datetime.fromtimestamp(timestamp_millis / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


def reference_of(entry: LedgerEntry) -> str:
    """Proof / release reference, or the block for wrap operations."""
    if entry.proof_or_release_ref:
        return entry.proof_or_release_ref
    if entry.block_number:
        return f"Block #{entry.block_number}"
    return "-"


def entry_row(entry: LedgerEntry) -> Dict[str, Any]:
    """Flatten an entry into display strings, one key per column."""
    label = "Op" if entry.family == RecordFamily.WRAP_OP else "Dep"
    return {
        "id": entry.id,
        "ref": f"{label} #{entry.family_local_id}",
        "type": entry.kind,
        "amount": format_amount(entry.amount_raw),
        "chain": display_chain(entry.remote_chain_tag),
        "counterparty": short_address(entry.counterparty_address),
        "status": entry.status.label,
        "color": entry.status.color,
        "time": format_timestamp(entry.timestamp_millis),
        "reference": reference_of(entry),
    }


def summary_lines(summary: LedgerSummary) -> List[str]:
    lines = [
        f"Bridge Out: {summary.bridge_out}",
        f"Bridge In: {summary.bridge_in}",
        f"Wrap/Unwrap: {summary.wrap_ops} ({summary.wraps} wraps, {summary.unwraps} unwraps)",
        f"Total: {summary.total}",
    ]
    if summary.awaiting_cancel:
        lines.append(f"Cancellable: {summary.awaiting_cancel}")
    return lines
