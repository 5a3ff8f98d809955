"""
Chain adapters: one capability contract, one implementation per chain family.
"""

from .base import ChainAdapter
from .evm import EVMAdapter
from .factory import AdapterFactory
from .ledger_asset import LedgerAssetAdapter

__all__ = ["ChainAdapter", "EVMAdapter", "LedgerAssetAdapter", "AdapterFactory"]
