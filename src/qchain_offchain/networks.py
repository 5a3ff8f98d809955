"""
Network Registry

Static table of supported networks. Pure lookup: every other component
resolves endpoints, explorers and chain ids here instead of hard-coding them.
"""

import json
from pathlib import Path
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple

from .enums import ChainFamily
from .errors import UnknownNetworkError
from .models import NetworkConfig


DEFAULT_NETWORKS: Tuple[NetworkConfig, ...] = (
    NetworkConfig(
        chain_key="31337",
        chain_family=ChainFamily.EVM,
        display_name="Localhost",
        endpoint_url="http://127.0.0.1:8545",
        explorer_url="",
        native_currency_symbol="ETH",
        is_testnet=True,
        chain_id=31337,
        nft_contract_address="0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512",
    ),
    NetworkConfig(
        chain_key="11155111",
        chain_family=ChainFamily.EVM,
        display_name="Sepolia Testnet",
        endpoint_url="https://rpc.sepolia.org",
        explorer_url="https://sepolia.etherscan.io",
        native_currency_symbol="ETH",
        is_testnet=True,
        chain_id=11155111,
    ),
    NetworkConfig(
        chain_key="1",
        chain_family=ChainFamily.EVM,
        display_name="Ethereum Mainnet",
        endpoint_url="https://eth.llamarpc.com",
        explorer_url="https://etherscan.io",
        native_currency_symbol="ETH",
        is_testnet=False,
        chain_id=1,
    ),
    NetworkConfig(
        chain_key="algorand-testnet",
        chain_family=ChainFamily.LEDGER_ASSET,
        display_name="Algorand Testnet",
        endpoint_url="https://testnet-api.algonode.cloud",
        explorer_url="https://testnet.explorer.perawallet.app",
        native_currency_symbol="ALGO",
        is_testnet=True,
        indexer_url="https://testnet-idx.algonode.cloud",
    ),
    NetworkConfig(
        chain_key="algorand-mainnet",
        chain_family=ChainFamily.LEDGER_ASSET,
        display_name="Algorand Mainnet",
        endpoint_url="https://mainnet-api.algonode.cloud",
        explorer_url="https://explorer.perawallet.app",
        native_currency_symbol="ALGO",
        is_testnet=False,
        indexer_url="https://mainnet-idx.algonode.cloud",
    ),
)

DEFAULT_CHAIN_KEY = "11155111"


class NetworkRegistry:
    """Immutable chain key → NetworkConfig table"""

    def __init__(self, networks: Iterable[NetworkConfig] = DEFAULT_NETWORKS):
        self._networks: Dict[str, NetworkConfig] = {}
        for network in networks:
            if network.chain_key in self._networks:
                raise ValueError(f"Duplicate network key: {network.chain_key}")
            self._networks[network.chain_key] = network

    @classmethod
    def from_file(cls, path: Path) -> "NetworkRegistry":
        """
        Load a registry from a JSON file

        Args:
            path: File holding a list of network objects (see NetworkConfig.to_dict)

        Returns:
            Registry containing exactly the networks in the file
        """
        data = json.loads(Path(path).read_text())
        return cls(NetworkConfig.from_dict(item) for item in data)

    def resolve(self, chain_key: str) -> NetworkConfig:
        """
        Look up a network by key

        Raises:
            UnknownNetworkError: If the key is not registered
        """
        try:
            return self._networks[str(chain_key)]
        except KeyError:
            raise UnknownNetworkError(str(chain_key)) from None

    def find_by_chain_id(self, chain_id: int) -> Optional[NetworkConfig]:
        for network in self._networks.values():
            if network.chain_family == ChainFamily.EVM and network.chain_id == chain_id:
                return network
        return None

    def with_contract_addresses(self, addresses: Mapping[str, str]) -> "NetworkRegistry":
        """Copy of the registry with EVM mint contract addresses overridden"""
        updated = []
        for network in self._networks.values():
            address = addresses.get(network.chain_key)
            if address and network.chain_family == ChainFamily.EVM:
                network = NetworkConfig.from_dict({**network.to_dict(), "nft_contract_address": address})
            updated.append(network)
        return NetworkRegistry(updated)

    def keys(self) -> Tuple[str, ...]:
        return tuple(self._networks)

    def __contains__(self, chain_key: object) -> bool:
        return str(chain_key) in self._networks

    def __iter__(self) -> Iterator[NetworkConfig]:
        return iter(self._networks.values())

    def __len__(self) -> int:
        return len(self._networks)
