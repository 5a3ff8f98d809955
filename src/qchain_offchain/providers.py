"""
Wallet Boundary

Capabilities the core consumes but does not own: an EIP-1193 style Ethereum
provider (a browser extension bridge, or a local key for headless use) and a
wallet-connect session for the ledger-asset chain. Both raise
ProviderRpcError, whose code follows EIP-1193 (4001 = user rejected).
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Sequence

from eth_account import Account
from web3 import AsyncWeb3, Web3


logger = logging.getLogger(__name__)


# ============================================================================
# Errors
# ============================================================================

USER_REJECTED = 4001
UNAUTHORIZED = 4100
UNSUPPORTED_METHOD = 4200
DISCONNECTED = 4900
CHAIN_DISCONNECTED = 4901
UNRECOGNIZED_CHAIN = 4902

SESSION_DEAD_CODES = frozenset({UNAUTHORIZED, DISCONNECTED, CHAIN_DISCONNECTED})


class ProviderRpcError(Exception):
    """Error returned by a wallet provider"""

    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"[{code}] {message}")

    @property
    def user_rejected(self) -> bool:
        return self.code == USER_REJECTED


# ============================================================================
# Ethereum provider (EIP-1193)
# ============================================================================

ETH_REQUEST_ACCOUNTS = "eth_requestAccounts"
ETH_ACCOUNTS = "eth_accounts"
ETH_CHAIN_ID = "eth_chainId"
ETH_SIGN_TRANSACTION = "eth_signTransaction"
WALLET_SWITCH_CHAIN = "wallet_switchEthereumChain"
WALLET_ADD_CHAIN = "wallet_addEthereumChain"
WALLET_REVOKE_PERMISSIONS = "wallet_revokePermissions"

ACCOUNTS_CHANGED = "accountsChanged"
CHAIN_CHANGED = "chainChanged"


class EthereumProvider(ABC):
    """
    Abstract Ethereum wallet provider.

    Represents window.ethereum behind a bridge, or a local signer.
    """

    @abstractmethod
    async def request(self, method: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Send a JSON-RPC request to the wallet"""

    @abstractmethod
    def on(self, event: str, callback: Callable[[Any], None]) -> None:
        """Subscribe to a wallet event"""

    @abstractmethod
    def remove_listener(self, event: str, callback: Callable[[Any], None]) -> None:
        """Unsubscribe from a wallet event"""


class LocalEthereumProvider(EthereumProvider):
    """
    Provider signing with a local private key.

    Fills nonce and gas price from the RPC node the way an extension would.
    Accounts never change, so no events are ever emitted.
    """

    def __init__(self, private_key: str, chain_id: int, rpc_url: str, web3: Optional[AsyncWeb3] = None):
        self._account = Account.from_key(private_key)
        self._chain_id = chain_id
        self._web3 = web3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self._listeners: Dict[str, List[Callable[[Any], None]]] = defaultdict(list)

    @property
    def address(self) -> str:
        return self._account.address

    async def request(self, method: str, params: Optional[Sequence[Any]] = None) -> Any:
        params = list(params or [])
        if method in (ETH_REQUEST_ACCOUNTS, ETH_ACCOUNTS):
            return [self._account.address]
        if method == ETH_CHAIN_ID:
            return hex(self._chain_id)
        if method == ETH_SIGN_TRANSACTION:
            return await self._sign_transaction(params[0])
        if method == WALLET_SWITCH_CHAIN:
            requested = int(params[0]["chainId"], 16)
            if requested != self._chain_id:
                raise ProviderRpcError(UNRECOGNIZED_CHAIN, f"Local signer is bound to chain {self._chain_id}")
            return None
        if method == WALLET_REVOKE_PERMISSIONS:
            return None
        raise ProviderRpcError(UNSUPPORTED_METHOD, f"Unsupported method: {method}")

    def on(self, event: str, callback: Callable[[Any], None]) -> None:
        self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Callable[[Any], None]) -> None:
        if callback in self._listeners[event]:
            self._listeners[event].remove(callback)

    async def _sign_transaction(self, tx: Dict[str, Any]) -> str:
        sender = Web3.to_checksum_address(tx["from"])
        if sender != self._account.address:
            raise ProviderRpcError(UNAUTHORIZED, f"Local signer does not control {sender}")

        nonce = await self._web3.eth.get_transaction_count(sender, "pending")
        gas_price = await self._web3.eth.gas_price
        unsigned = {
            "to": Web3.to_checksum_address(tx["to"]),
            "data": tx.get("data", "0x"),
            "value": int(tx.get("value", "0x0"), 16),
            "gas": int(tx["gas"], 16),
            "gasPrice": gas_price,
            "nonce": nonce,
            "chainId": int(tx["chainId"], 16),
        }
        signed = self._account.sign_transaction(unsigned)
        logger.info(f"Signed transaction locally for {sender} (nonce {nonce})")
        return Web3.to_hex(signed.raw_transaction)


# ============================================================================
# Ledger-asset wallet connector
# ============================================================================


class LedgerWalletConnector(ABC):
    """
    Wallet-connect session manager for the ledger-asset chain.

    Transactions are handed over as groups of ``{"txn": {...}, "signers": [...]}``
    entries; the connector returns one signed blob per transaction.
    """

    @abstractmethod
    async def connect(self) -> List[str]:
        """Open a session, prompting the user; returns the approved accounts"""

    @abstractmethod
    async def reconnect_session(self) -> List[str]:
        """Restore a previous session without prompting; empty if there is none"""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the remote session"""

    @abstractmethod
    async def sign_transactions(self, groups: Sequence[Sequence[Dict[str, Any]]]) -> List[bytes]:
        """Ask the user to sign transaction groups"""

    def on_disconnect(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback for remote disconnects; returns an unsubscribe callable"""
        return lambda: None
