"""
Family record decoders.

One decode function per family tag turns the positional tuple returned by
the vault getter into its typed record. Anything malformed raises
DecodeError so the fetcher can drop that single record.
"""

from typing import Any, Callable, Dict, Sequence

from ..exceptions import DecodeError
from .types import (
    BridgeInRecord,
    BridgeOutRecord,
    FamilyRecord,
    RecordFamily,
    WrapDirection,
    WrapOpRecord,
)

ZERO_ADDRESS = "0x" + "0" * 40


def _uint(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise DecodeError(f"{name}: expected unsigned integer, got bool")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise DecodeError(f"{name}: expected unsigned integer, got {value!r}")
    if number < 0:
        raise DecodeError(f"{name}: negative value {number}")
    return number


def _text(value: Any, name: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            raise DecodeError(f"{name}: not valid UTF-8")
    if not isinstance(value, str):
        raise DecodeError(f"{name}: expected string, got {type(value).__name__}")
    return value


def _unpack(raw: Sequence[Any], width: int, family: RecordFamily) -> Sequence[Any]:
    if not isinstance(raw, (tuple, list)):
        raise DecodeError(f"{family.name}: expected a tuple, got {type(raw).__name__}")
    if len(raw) != width:
        raise DecodeError(f"{family.name}: expected {width} fields, got {len(raw)}")
    return raw


def _check_identity(record_id: int, expected_id: int, owner: str, family: RecordFamily) -> None:
    # Unset mapping slots come back zero-filled
    if owner.lower() == ZERO_ADDRESS:
        raise DecodeError(f"{family.name} #{expected_id}: record is empty")
    if record_id != expected_id:
        raise DecodeError(
            f"{family.name} #{expected_id}: payload carries id {record_id}"
        )


def decode_bridge_out(raw: Sequence[Any], expected_id: int) -> BridgeOutRecord:
    """Decode a depositsOut tuple."""
    fields = _unpack(raw, 8, RecordFamily.BRIDGE_OUT)
    record = BridgeOutRecord(
        deposit_id=_uint(fields[0], "depositOutId"),
        depositor=_text(fields[1], "depositor"),
        amount_raw=_uint(fields[2], "amount"),
        receiving_address=_text(fields[3], "receivingWalletAddress"),
        chain=_text(fields[4], "chain"),
        status_code=_uint(fields[5], "status"),
        release_ref=_text(fields[6], "txRelease"),
        timestamp=_uint(fields[7], "timestamp"),
    )
    _check_identity(record.deposit_id, expected_id, record.depositor, RecordFamily.BRIDGE_OUT)
    return record


def decode_bridge_in(raw: Sequence[Any], expected_id: int) -> BridgeInRecord:
    """Decode a depositsIn tuple."""
    fields = _unpack(raw, 8, RecordFamily.BRIDGE_IN)
    record = BridgeInRecord(
        deposit_id=_uint(fields[0], "depositInId"),
        depositor=_text(fields[1], "depositor"),
        amount_raw=_uint(fields[2], "amount"),
        receiving_address=_text(fields[3], "receivingWalletAddress"),
        chain=_text(fields[4], "chain"),
        status_code=_uint(fields[5], "status"),
        deposit_proof_ref=_text(fields[6], "txDepositProof"),
        timestamp=_uint(fields[7], "timestamp"),
    )
    _check_identity(record.deposit_id, expected_id, record.depositor, RecordFamily.BRIDGE_IN)
    return record


def decode_wrap_op(raw: Sequence[Any], expected_id: int) -> WrapOpRecord:
    """Decode an ancientWrapOperations tuple."""
    fields = _unpack(raw, 6, RecordFamily.WRAP_OP)
    operation_type = _uint(fields[3], "operationType")
    try:
        direction = WrapDirection(operation_type)
    except ValueError:
        raise DecodeError(f"WRAP_OP #{expected_id}: unknown operationType {operation_type}")
    record = WrapOpRecord(
        operation_id=_uint(fields[0], "wrapOperationId"),
        user=_text(fields[1], "user"),
        amount_raw=_uint(fields[2], "amount"),
        direction=direction,
        timestamp=_uint(fields[4], "timestamp"),
        block_number=_uint(fields[5], "blockNumber"),
    )
    _check_identity(record.operation_id, expected_id, record.user, RecordFamily.WRAP_OP)
    return record


DECODERS: Dict[RecordFamily, Callable[[Sequence[Any], int], FamilyRecord]] = {
    RecordFamily.BRIDGE_OUT: decode_bridge_out,
    RecordFamily.BRIDGE_IN: decode_bridge_in,
    RecordFamily.WRAP_OP: decode_wrap_op,
}


def decode_record(family: RecordFamily, raw: Sequence[Any], expected_id: int) -> FamilyRecord:
    """Dispatch to the decoder for ``family``."""
    return DECODERS[family](raw, expected_id)
