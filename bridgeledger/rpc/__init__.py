"""
JSON-RPC access to the bridge vault.
"""

from .client import JsonRpcClient, RPCErrorCode
from .vault import RpcBridgeVault

__all__ = [
    "JsonRpcClient",
    "RPCErrorCode",
    "RpcBridgeVault",
]
