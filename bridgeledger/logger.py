"""
Bridge Ledger Logging
=====================

Every module asks for its logger through :func:`get_logger`. The first call
installs the handlers on the root logger: a rich console on stderr (or a
plain stream handler when highlighting is off) and, when ``LOG_FILE_OUTPUT``
is set, a rotating file under ``logs/``. Settings come from ``.env`` via
:mod:`bridgeledger.constants`.

Usage:
    >>> from bridgeledger.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Refresh started")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_MAX_FILE_SIZE,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_FILE_OUTPUT,
)


LOG_FILE_PATH = Path.cwd() / "logs" / "bridge-ledger.log"

# Libraries whose INFO output would drown the ledger lines
QUIET_LOGGERS = ("httpx", "httpcore")

LEDGER_THEME = Theme(
    {
        "ledger.arrow":           "bold yellow",
        "ledger.address":         "cyan",
        "ledger.entry_id":        "bold magenta",
        "ledger.family":          "bold blue",
        "ledger.level_critical":  "bold red reverse",
        "ledger.level_debug":     "bold dim",
        "ledger.level_error":     "bold red",
        "ledger.level_info":      "bold green",
        "ledger.level_warning":   "bold yellow",
        "ledger.logger_name":     "magenta",
        "ledger.status_bad":      "bold red",
        "ledger.status_good":     "bold green",
        "ledger.status_pending":  "bold yellow",
        "ledger.timestamp":       "bold cyan",
        "ledger.url":             "cyan",
    }
)


def _level_number(level: Optional[str]) -> int:
    return getattr(logging, str(level or LOG_LEVEL).upper(), logging.INFO)


class TerminalSafeFormatter(logging.Formatter):
    """
    A formatter that sanitizes log output.

    Record fields such as counterparty addresses and chain tags come straight
    from the chain, so ANSI escape sequences and non-printable control
    characters are stripped before they reach a terminal (CWE-117).
    """

    _ansi_escape_re = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"
        r"|\x1b[@-Z\\-_]"
    )
    # Everything below 0x20 except tab and newline, plus DEL
    _unsafe_re = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")

    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        return cls._unsafe_re.sub("", cls._ansi_escape_re.sub("", text))

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))

    @classmethod
    def from_settings(cls, log_format: str, date_format: str) -> "TerminalSafeFormatter":
        """
        Build the UTC formatter for the configured format strings.

        A format string that ``logging`` rejects falls back to the default
        with a note on stderr; logging setup itself never fails.
        """
        try:
            formatter = cls(fmt=str(log_format), datefmt=f"{date_format} UTC", validate=True)
        except (ValueError, TypeError) as e:
            print(f"bridgeledger.logger: bad LOG_FORMAT ({e}); using default", file=sys.stderr)
            formatter = cls(fmt=str(LOG_FORMAT.default()), datefmt=f"{LOG_DATE_FORMAT.default()} UTC")
        formatter.converter = time.gmtime
        return formatter


class LedgerLogHighlighter(RegexHighlighter):
    """Colours family tags, entry ids, statuses, addresses and RPC arrows."""

    base_style = "ledger."
    highlights = [
        r"(?P<arrow>(\-\->)|(<--))",
        r"(?P<address>\b0x[0-9a-fA-F]{40}\b)",
        r"(?P<entry_id>\b(out|in|wrap)-\d+\b)",
        r"(?P<family>\b(BRIDGE_OUT|BRIDGE_IN|WRAP_OP)\b)",
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<status_bad>\b(Canceled|Invalid)\b)",
        r"(?P<status_good>\bFinalized\b)",
        r"(?P<status_pending>\b(Awaiting|Locked)\b)",
        r"(?P<timestamp>^(.*?)UTC)",
        r"(?P<url>https?://\S+)",
    ]


class LogManager:
    """
    Process-wide owner of the root logger's handlers.

    A singleton: every instance shares one configuration, applied at most
    once. ``set_level`` is how the CLI's ``--log-level`` reaches handlers
    that were installed at import time.
    """

    _instance: Optional["LogManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._configured = False
        return cls._instance

    @property
    def is_configured(self) -> bool:
        return self._configured

    def _console_handler(self, formatter: logging.Formatter) -> logging.Handler:
        if not LOG_CONSOLE_HIGHLIGHTING:
            handler = logging.StreamHandler(sys.stderr)
        else:
            handler = RichHandler(
                console=Console(theme=LEDGER_THEME, highlight=False, stderr=True),
                highlighter=LedgerLogHighlighter(),
                keywords=[],
                rich_tracebacks=True,
                show_path=False,
                show_time=False,
                show_level=False,
                markup=False,
            )
        handler.setFormatter(formatter)
        return handler

    def _file_handler(self, path: Path, formatter: logging.Formatter) -> logging.Handler:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            filename=str(path),
            maxBytes=LOG_MAX_FILE_SIZE,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        handler.setFormatter(formatter)
        return handler

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Install handlers on the root logger. Later calls are no-ops.

        Args:
            log_level: Level name; defaults to ``LOG_LEVEL`` from ``.env``
            log_file: Rotating log path; defaults to ``logs/bridge-ledger.log``
            console_output: Attach the stderr handler
            file_output: Attach the file handler; defaults to ``LOG_FILE_OUTPUT``
        """
        with self._lock:
            if self._configured:
                return

            formatter = TerminalSafeFormatter.from_settings(LOG_FORMAT, LOG_DATE_FORMAT)
            handlers = []
            if console_output:
                handlers.append(self._console_handler(formatter))
            if LOG_FILE_OUTPUT if file_output is None else file_output:
                handlers.append(self._file_handler(log_file or LOG_FILE_PATH, formatter))

            root_logger = logging.getLogger()
            root_logger.handlers.clear()
            for handler in handlers:
                root_logger.addHandler(handler)
            for name in QUIET_LOGGERS:
                logging.getLogger(name).setLevel(logging.WARNING)

            self._configured = True
        self.set_level(log_level)

    def set_level(self, log_level: Optional[str]) -> None:
        """Apply ``log_level`` to the root logger and each of its handlers."""
        if not self._configured:
            self.configure(log_level=log_level)
            return
        level = _level_number(log_level)
        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        for handler in root_logger.handlers:
            handler.setLevel(level)

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name``, configuring the logging system on first use."""
    return _manager.get_logger(name)
