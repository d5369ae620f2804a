"""
Bridge Ledger Configuration

Loads bridge-ledger.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    CancelConfig,
    ContractConfig,
    HistoryConfig,
    LedgerConfig,
    RpcConfig,
    load_config,
)

__all__ = [
    "CancelConfig",
    "ContractConfig",
    "HistoryConfig",
    "LedgerConfig",
    "RpcConfig",
    "load_config",
]
