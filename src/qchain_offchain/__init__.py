"""
QChain Wallet Core

Multi-chain wallet sessions and the transaction lifecycle behind quantum-hash
NFT minting. Chain-specific behavior lives in the adapters; the session
manager, coordinator and mint workflow only speak the adapter contract.
"""

from .adapters import AdapterFactory, ChainAdapter, EVMAdapter, LedgerAssetAdapter
from .config import CoreSettings
from .coordinator import TransactionCoordinator
from .hash_client import ExternalHashClient
from .mint import MintWorkflow
from .networks import NetworkRegistry
from .session import WalletSessionManager


__all__ = [
    "AdapterFactory",
    "ChainAdapter",
    "CoreSettings",
    "EVMAdapter",
    "ExternalHashClient",
    "LedgerAssetAdapter",
    "MintWorkflow",
    "NetworkRegistry",
    "TransactionCoordinator",
    "WalletSessionManager",
]
