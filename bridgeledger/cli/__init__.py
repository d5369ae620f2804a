"""
Bridge Ledger command-line interface.
"""

from .ledger import cli, main

__all__ = ["cli", "main"]
