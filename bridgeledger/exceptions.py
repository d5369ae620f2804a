"""
Bridge Ledger Exceptions

Custom exception classes for ledger reconciliation and cancellation.
"""

from typing import Any, List, Optional


class BridgeLedgerError(Exception):
    """Base exception for bridge-ledger."""
    pass


class ConfigurationError(BridgeLedgerError):
    """Configuration error."""
    pass


# ── Boundary / transport ────────────────────────────────────────────

class TransportError(BridgeLedgerError):
    """RPC or network failure talking to the chain boundary.

    Never retried mid-run; the next refresh naturally re-attempts.
    """

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


class CallTimeoutError(TransportError):
    """A single boundary call exceeded its time budget."""
    pass


class ContractRevertError(BridgeLedgerError):
    """The contract rejected a call or transaction (execution reverted)."""

    def __init__(self, message: str, reason: str = ""):
        super().__init__(message)
        self.reason = reason


class DecodeError(BridgeLedgerError):
    """A record payload could not be decoded into its family shape."""
    pass


# ── Cancellation ────────────────────────────────────────────────────

class CancelError(BridgeLedgerError):
    """Base class for cancellation failures."""

    retryable = False

    def __init__(self, message: str, deposit_id: Optional[int] = None):
        super().__init__(message)
        self.deposit_id = deposit_id


class IneligibleCancelError(CancelError):
    """Cancel attempted on a record that is not Awaiting. Terminal."""
    pass


class DuplicateCancelError(CancelError):
    """A cancel for this deposit is already in flight. No-op rejection."""
    pass


class UserRejectedError(CancelError):
    """The signer declined the transaction. Terminal."""
    pass


class ConfirmationTimeoutError(CancelError):
    """Submitted but not confirmed within the wait bound.

    Retryable by re-checking status on the next refresh; the cancel must not
    be resubmitted automatically.
    """

    retryable = True

    def __init__(self, message: str, deposit_id: Optional[int] = None, tx_hash: str = ""):
        super().__init__(message, deposit_id)
        self.tx_hash = tx_hash


class WalletNotConnectedError(CancelError):
    """No account is available to sign the cancellation."""
    pass


# ── Refresh ─────────────────────────────────────────────────────────

class RefreshError(BridgeLedgerError):
    """Whole-run refresh failure.

    Carries whatever partial snapshot was collected and the per-family issues
    that caused the failure.
    """

    def __init__(self, message: str, partial=None, issues: Optional[List[Any]] = None):
        super().__init__(message)
        self.partial = partial
        self.issues = list(issues or [])
