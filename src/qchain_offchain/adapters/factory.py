"""
Adapter Factory

Builds the adapter for a network from its chain family and keeps one
instance per chain key.
"""

import logging
from typing import Dict, Optional

import httpx
from web3 import AsyncWeb3, Web3

from ..config import CoreSettings
from ..enums import ChainFamily
from ..models import NetworkConfig
from ..providers import EthereumProvider, LedgerWalletConnector
from .base import ChainAdapter
from .evm import EVMAdapter
from .ledger_asset import LedgerAssetAdapter


logger = logging.getLogger(__name__)


class AdapterFactory:
    """Callable mapping a NetworkConfig to its ChainAdapter"""

    def __init__(
        self,
        settings: Optional[CoreSettings] = None,
        evm_provider: Optional[EthereumProvider] = None,
        ledger_connector: Optional[LedgerWalletConnector] = None,
        web3: Optional[AsyncWeb3] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or CoreSettings()
        self.evm_provider = evm_provider
        self.ledger_connector = ledger_connector
        self._web3 = web3
        self._transport = transport
        self._adapters: Dict[str, ChainAdapter] = {}

    def __call__(self, network: NetworkConfig) -> ChainAdapter:
        adapter = self._adapters.get(network.chain_key)
        if adapter is None:
            adapter = self._create(network)
            self._adapters[network.chain_key] = adapter
        return adapter

    def _create(self, network: NetworkConfig) -> ChainAdapter:
        logger.debug(f"Creating {network.chain_family.value} adapter for {network.display_name}")

        if network.chain_family == ChainFamily.EVM:
            return EVMAdapter(
                network,
                provider=self.evm_provider,
                web3=self._web3,
                receipt_timeout=self.settings.evm_receipt_timeout,
                gas_buffer_percent=self.settings.evm_gas_buffer_percent,
                default_mint_price_wei=Web3.to_wei(self.settings.default_mint_price_eth, "ether"),
                request_timeout=self.settings.http_timeout,
            )

        if network.chain_family == ChainFamily.LEDGER_ASSET:
            return LedgerAssetAdapter(
                network,
                connector=self.ledger_connector,
                unit_name=self.settings.ledger_unit_name,
                validity_rounds=self.settings.ledger_validity_rounds,
                timeout=self.settings.http_timeout,
                transport=self._transport,
            )

        raise ValueError(f"Unsupported chain family: {network.chain_family}")
