"""
Bridge vault contract boundary

Provides:
  - boundary: BridgeVaultBoundary ABC and TransactionReceipt
  - abi: Vault function signatures, calldata encoding and result decoding
  - memory: InMemoryBridgeVault for tests and local runs
"""

from .boundary import BridgeVaultBoundary, TransactionReceipt
from .memory import InMemoryBridgeVault

__all__ = [
    "BridgeVaultBoundary",
    "TransactionReceipt",
    "InMemoryBridgeVault",
]
