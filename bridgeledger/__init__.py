"""
Bridge Ledger Package

Reconstructs a holder's bridge history (bridge-out deposits, bridge-in
deposits, wrap/unwrap operations) from the bridge vault contract and
cancels awaiting bridge-out deposits.

Core imports are lazily loaded so the CLI and config can be imported
without pulling in the RPC stack. For direct module access, import from
submodules:

    from bridgeledger.ledger import RefreshOrchestrator, CancellationCoordinator
    from bridgeledger.contracts import InMemoryBridgeVault
    from bridgeledger.rpc import RpcBridgeVault
"""

__version__ = "0.1.0"


def __getattr__(name):
    """Lazy module loading."""
    if name == 'RefreshOrchestrator':
        from .ledger import RefreshOrchestrator
        return RefreshOrchestrator
    elif name == 'CancellationCoordinator':
        from .ledger import CancellationCoordinator
        return CancellationCoordinator
    elif name == 'LedgerSnapshot':
        from .ledger import LedgerSnapshot
        return LedgerSnapshot
    elif name == 'load_config':
        from .config import load_config
        return load_config
    raise AttributeError(f"module 'bridgeledger' has no attribute {name!r}")


__all__ = ['RefreshOrchestrator', 'CancellationCoordinator', 'LedgerSnapshot', 'load_config']
