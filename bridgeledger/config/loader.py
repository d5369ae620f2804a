"""
Bridge Ledger TOML Configuration Loader

Loads bridge-ledger.toml with environment variable overrides.

Environment variable mapping:
    [rpc] url                  → BRIDGE_LEDGER_RPC_URL
    [rpc] timeout              → BRIDGE_LEDGER_RPC_TIMEOUT
    [contract] address         → BRIDGE_LEDGER_CONTRACT_ADDRESS
    [history] page_size        → BRIDGE_LEDGER_PAGE_SIZE
    [history] batch_size       → BRIDGE_LEDGER_BATCH_SIZE
    [cancel] account           → BRIDGE_LEDGER_ACCOUNT
    ...

No signing keys are read here; cancellations are signed by the node or
wallet that manages ``[cancel] account``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from eth_utils import is_address

from ..constants import (
    CALL_TIMEOUT,
    CONFIRMATION_TIMEOUT,
    DETAIL_BATCH_DELAY,
    DETAIL_BATCH_SIZE,
    HISTORY_MAX_PAGES,
    HISTORY_PAGE_SIZE,
    RECEIPT_POLL_INTERVAL,
)
from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = "bridge-ledger.toml"
DEFAULT_RPC_URL = "https://mainnet.base.org"


def _env_float(name: str) -> Optional[float]:
    v = os.environ.get(name)
    if not v:
        return None
    try:
        return float(v)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {v!r}")


def _env_int(name: str) -> Optional[int]:
    v = os.environ.get(name)
    if not v:
        return None
    try:
        return int(v)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {v!r}")


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class RpcConfig:
    """[rpc] section."""
    url: str = DEFAULT_RPC_URL
    timeout: float = CALL_TIMEOUT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RpcConfig":
        return cls(
            url=data.get("url", DEFAULT_RPC_URL),
            timeout=float(data.get("timeout", CALL_TIMEOUT)),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("BRIDGE_LEDGER_RPC_URL"):
            self.url = v
        if (v := _env_float("BRIDGE_LEDGER_RPC_TIMEOUT")) is not None:
            self.timeout = v


@dataclass
class ContractConfig:
    """[contract] section."""
    address: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContractConfig":
        return cls(address=data.get("address", ""))

    def apply_env(self) -> None:
        if v := os.environ.get("BRIDGE_LEDGER_CONTRACT_ADDRESS"):
            self.address = v


@dataclass
class HistoryConfig:
    """[history] section: pagination and detail fetching."""
    page_size: int = HISTORY_PAGE_SIZE
    max_pages: int = HISTORY_MAX_PAGES
    batch_size: int = DETAIL_BATCH_SIZE
    batch_delay: float = DETAIL_BATCH_DELAY

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryConfig":
        return cls(
            page_size=int(data.get("page_size", HISTORY_PAGE_SIZE)),
            max_pages=int(data.get("max_pages", HISTORY_MAX_PAGES)),
            batch_size=int(data.get("batch_size", DETAIL_BATCH_SIZE)),
            batch_delay=float(data.get("batch_delay", DETAIL_BATCH_DELAY)),
        )

    def apply_env(self) -> None:
        if (v := _env_int("BRIDGE_LEDGER_PAGE_SIZE")) is not None:
            self.page_size = v
        if (v := _env_int("BRIDGE_LEDGER_MAX_PAGES")) is not None:
            self.max_pages = v
        if (v := _env_int("BRIDGE_LEDGER_BATCH_SIZE")) is not None:
            self.batch_size = v
        if (v := _env_float("BRIDGE_LEDGER_BATCH_DELAY")) is not None:
            self.batch_delay = v


@dataclass
class CancelConfig:
    """[cancel] section."""
    account: str = ""
    confirmation_timeout: float = CONFIRMATION_TIMEOUT
    poll_interval: float = RECEIPT_POLL_INTERVAL
    precheck: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CancelConfig":
        return cls(
            account=data.get("account", ""),
            confirmation_timeout=float(data.get("confirmation_timeout", CONFIRMATION_TIMEOUT)),
            poll_interval=float(data.get("poll_interval", RECEIPT_POLL_INTERVAL)),
            precheck=bool(data.get("precheck", True)),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("BRIDGE_LEDGER_ACCOUNT"):
            self.account = v
        if (v := _env_float("BRIDGE_LEDGER_CONFIRMATION_TIMEOUT")) is not None:
            self.confirmation_timeout = v


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


@dataclass
class LedgerConfig:
    """Complete bridge-ledger configuration."""
    rpc: RpcConfig = field(default_factory=RpcConfig)
    contract: ContractConfig = field(default_factory=ContractConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    cancel: CancelConfig = field(default_factory=CancelConfig)
    source: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerConfig":
        return cls(
            rpc=RpcConfig.from_dict(data.get("rpc", {})),
            contract=ContractConfig.from_dict(data.get("contract", {})),
            history=HistoryConfig.from_dict(data.get("history", {})),
            cancel=CancelConfig.from_dict(data.get("cancel", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "LedgerConfig":
        """
        Load configuration from a TOML file.

        A missing file yields defaults (still subject to env overrides).

        Raises:
            ConfigurationError: if the file is not valid TOML
        """
        path = Path(config_path)
        if not path.exists():
            logger.debug(f"Config file not found: {config_path}, using defaults")
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomli.load(f)
        except tomli.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.source = str(path)
        cfg.apply_env()
        logger.debug(f"Loaded configuration from {path}")
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.rpc.apply_env()
        self.contract.apply_env()
        self.history.apply_env()
        self.cancel.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self, require_contract: bool = True) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        if not self.rpc.url.startswith(("http://", "https://")):
            raise ConfigurationError(f"rpc.url must be an http(s) URL, got {self.rpc.url!r}")
        if self.rpc.timeout <= 0:
            raise ConfigurationError("rpc.timeout must be > 0")
        if require_contract and not self.contract.address:
            raise ConfigurationError(
                "contract.address is not set (bridge-ledger.toml or BRIDGE_LEDGER_CONTRACT_ADDRESS)"
            )
        if self.contract.address and not is_address(self.contract.address):
            raise ConfigurationError(f"Invalid contract.address: {self.contract.address!r}")
        if self.history.page_size < 1:
            raise ConfigurationError("history.page_size must be >= 1")
        if self.history.max_pages < 1:
            raise ConfigurationError("history.max_pages must be >= 1")
        if self.history.batch_size < 1:
            raise ConfigurationError("history.batch_size must be >= 1")
        if self.history.batch_delay < 0:
            raise ConfigurationError("history.batch_delay must be >= 0")
        if self.cancel.account and not is_address(self.cancel.account):
            raise ConfigurationError(f"Invalid cancel.account: {self.cancel.account!r}")
        if self.cancel.confirmation_timeout <= 0:
            raise ConfigurationError("cancel.confirmation_timeout must be > 0")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics)."""
        return {
            "rpc": {"url": self.rpc.url, "timeout": self.rpc.timeout},
            "contract": {"address": self.contract.address},
            "history": {
                "page_size": self.history.page_size,
                "max_pages": self.history.max_pages,
                "batch_size": self.history.batch_size,
                "batch_delay": self.history.batch_delay,
            },
            "cancel": {
                "account": self.cancel.account,
                "confirmation_timeout": self.cancel.confirmation_timeout,
                "poll_interval": self.cancel.poll_interval,
                "precheck": self.cancel.precheck,
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> LedgerConfig:
    """
    Load bridge-ledger configuration.

    Resolution order:
        1. Explicit *path* argument
        2. BRIDGE_LEDGER_CONFIG env var
        3. ./bridge-ledger.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("BRIDGE_LEDGER_CONFIG", DEFAULT_CONFIG_FILE)

    return LedgerConfig.from_file(path)
