"""
Status classification for vault records.

Maps a family-specific on-chain status code to a StatusDescriptor. The
mapping is total: codes a future contract upgrade might add fall through to
UNKNOWN instead of raising.
"""

from typing import Any, Dict

from .types import RecordFamily, Severity, StatusDescriptor


AWAITING = StatusDescriptor(
    label="Awaiting",
    severity=Severity.PENDING,
    icon="clock",
    tooltip="Waiting for the bridge operator to process this deposit.",
)

BRIDGE_OUT_AWAITING = StatusDescriptor(
    label="Awaiting",
    severity=Severity.PENDING,
    icon="clock",
    tooltip="Waiting for release on the remote chain. Can still be canceled.",
)

CANCELED = StatusDescriptor(
    label="Canceled",
    severity=Severity.ERROR,
    icon="cross",
    tooltip="Canceled by the depositor. Tokens were returned.",
)

LOCKED = StatusDescriptor(
    label="Locked",
    severity=Severity.INFO,
    icon="lock",
    tooltip="Picked up by the bridge operator. Release is in progress and can no longer be canceled.",
)

FINALIZED = StatusDescriptor(
    label="Finalized",
    severity=Severity.SUCCESS,
    icon="check",
    tooltip="Completed.",
)

INVALID = StatusDescriptor(
    label="Invalid",
    severity=Severity.ERROR,
    icon="cross",
    tooltip="The deposit proof was rejected by the bridge operator.",
)

WRAP_FINALIZED = StatusDescriptor(
    label="Finalized",
    severity=Severity.SUCCESS,
    icon="check",
    tooltip="Conversion committed on-chain.",
)

UNKNOWN = StatusDescriptor(
    label="Unknown",
    severity=Severity.NEUTRAL,
    icon="question",
    tooltip="Unrecognized status code.",
)


BRIDGE_OUT_STATUSES: Dict[int, StatusDescriptor] = {
    0: BRIDGE_OUT_AWAITING,
    1: CANCELED,
    2: LOCKED,
    3: FINALIZED,
}

BRIDGE_IN_STATUSES: Dict[int, StatusDescriptor] = {
    0: AWAITING,
    1: FINALIZED,
    2: INVALID,
}

# Raw codes after which a record never changes again
TERMINAL_CODES = {
    RecordFamily.BRIDGE_OUT: frozenset({1, 3}),
    RecordFamily.BRIDGE_IN: frozenset({1, 2}),
}

BRIDGE_OUT_AWAITING_CODE = 0


def _as_code(raw_code: Any):
    # bool is an int subclass but never a valid status
    if isinstance(raw_code, bool) or not isinstance(raw_code, int):
        return None
    return raw_code


def classify(family: RecordFamily, raw_code: Any) -> StatusDescriptor:
    """
    Classify a raw status code for a record family.

    Args:
        family: Record family the code belongs to
        raw_code: On-chain status integer (ignored for wrap ops)

    Returns:
        The matching StatusDescriptor, or UNKNOWN for anything unrecognized
    """
    if family == RecordFamily.WRAP_OP:
        return WRAP_FINALIZED

    code = _as_code(raw_code)
    if code is None:
        return UNKNOWN

    if family == RecordFamily.BRIDGE_OUT:
        return BRIDGE_OUT_STATUSES.get(code, UNKNOWN)
    if family == RecordFamily.BRIDGE_IN:
        return BRIDGE_IN_STATUSES.get(code, UNKNOWN)
    return UNKNOWN


def is_cancellable(family: RecordFamily, raw_code: Any) -> bool:
    """Only bridge-out deposits still Awaiting can be canceled."""
    return family == RecordFamily.BRIDGE_OUT and _as_code(raw_code) == BRIDGE_OUT_AWAITING_CODE


def is_terminal(family: RecordFamily, raw_code: Any) -> bool:
    """True when the record can no longer change status."""
    if family == RecordFamily.WRAP_OP:
        return True
    return _as_code(raw_code) in TERMINAL_CODES.get(family, frozenset())
