"""
Domain Models

Records shared by the adapters, the session manager and the mint workflow.
Pending transactions are a tagged union: every adapter handles exactly the
variants of its own chain family.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union

from .enums import ChainFamily, SessionState, TransactionKind


MAX_NAME_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 500


# ============================================================================
# Network
# ============================================================================


@dataclass(frozen=True)
class NetworkConfig:
    """Connection parameters for one network"""

    chain_key: str
    chain_family: ChainFamily
    display_name: str
    endpoint_url: str
    explorer_url: str
    native_currency_symbol: str
    is_testnet: bool
    chain_id: int = 0
    nft_contract_address: Optional[str] = None
    indexer_url: Optional[str] = None

    def explorer_tx_url(self, transaction_id: str) -> str:
        """Explorer link for a transaction, empty when the network has no explorer"""
        if not self.explorer_url:
            return ""
        return f"{self.explorer_url.rstrip('/')}/tx/{transaction_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain_key": self.chain_key,
            "chain_family": self.chain_family.value,
            "display_name": self.display_name,
            "endpoint_url": self.endpoint_url,
            "explorer_url": self.explorer_url,
            "native_currency_symbol": self.native_currency_symbol,
            "is_testnet": self.is_testnet,
            "chain_id": self.chain_id,
            "nft_contract_address": self.nft_contract_address,
            "indexer_url": self.indexer_url,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "NetworkConfig":
        return NetworkConfig(
            chain_key=str(data["chain_key"]),
            chain_family=ChainFamily(data["chain_family"]),
            display_name=data["display_name"],
            endpoint_url=data["endpoint_url"],
            explorer_url=data.get("explorer_url", ""),
            native_currency_symbol=data["native_currency_symbol"],
            is_testnet=bool(data.get("is_testnet", False)),
            chain_id=int(data.get("chain_id", 0)),
            nft_contract_address=data.get("nft_contract_address") or None,
            indexer_url=data.get("indexer_url") or None,
        )


# ============================================================================
# Session
# ============================================================================


@dataclass(frozen=True)
class OwnedAsset:
    asset_id: str
    amount: int
    uri: Optional[str] = None


@dataclass(frozen=True)
class WalletSession:
    """
    Snapshot of the single active wallet session.

    Connected exactly when ``address`` is set. A new snapshot replaces the old
    one on every transition; nothing outside the session manager builds them.
    """

    chain_family: Optional[ChainFamily] = None
    chain_key: Optional[str] = None
    address: Optional[str] = None
    connected_at: Optional[datetime] = None
    is_connecting: bool = False
    balance: Optional[Decimal] = None
    assets: Tuple[OwnedAsset, ...] = ()
    generation: int = 0

    @property
    def state(self) -> SessionState:
        if self.address is not None:
            return SessionState.CONNECTED
        if self.is_connecting:
            return SessionState.CONNECTING
        return SessionState.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self.address is not None

    def with_balance(self, balance: Decimal, assets: Tuple[OwnedAsset, ...]) -> "WalletSession":
        return replace(self, balance=balance, assets=assets)


# ============================================================================
# Transactions
# ============================================================================


@dataclass(frozen=True)
class EVMCall:
    """Contract call or value transfer on an EVM chain"""

    sender: str
    to: str
    data: str
    value_wei: int
    chain_id: int
    kind: TransactionKind = TransactionKind.MINT

    tag = "EVMCall"
    chain_family = ChainFamily.EVM


@dataclass(frozen=True)
class LedgerAssetCreate:
    """Asset configuration transaction creating a new asset"""

    sender: str
    asset_name: str
    unit_name: str
    asset_url: str
    total: int = 1
    decimals: int = 0
    default_frozen: bool = False
    metadata_hash: Optional[bytes] = None
    note: Optional[bytes] = None

    tag = "LedgerAssetCreate"
    chain_family = ChainFamily.LEDGER_ASSET
    kind = TransactionKind.MINT


@dataclass(frozen=True)
class LedgerPayment:
    """Native currency payment in micro units"""

    sender: str
    receiver: str
    amount_micro: int
    note: Optional[bytes] = None

    tag = "LedgerPayment"
    chain_family = ChainFamily.LEDGER_ASSET
    kind = TransactionKind.PAYMENT


PendingTransaction = Union[EVMCall, LedgerAssetCreate, LedgerPayment]


@dataclass
class SignedTransaction:
    """Signed payload, consumed exactly once by submit"""

    payload: bytes
    tag: str
    sender: str
    _consumed: bool = field(default=False, repr=False)

    def consume(self) -> bytes:
        if self._consumed:
            raise RuntimeError("Signed transaction was already submitted.")
        self._consumed = True
        return self.payload

    @property
    def consumed(self) -> bool:
        return self._consumed


@dataclass(frozen=True)
class ConfirmationResult:
    """Terminal value of a confirmation wait"""

    transaction_id: str
    confirmed_at: int
    raw: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Mint
# ============================================================================


@dataclass
class MintRequest:
    """
    Input of one mint attempt.

    ``quantum_hash`` is filled by the workflow when the hash service answers;
    a mint transaction is never built without it.
    """

    name: str
    description: str
    image_bytes: bytes
    quantum_hash: Optional[str] = None


@dataclass(frozen=True)
class MintResult:
    asset_id: str
    creator_address: str
    quantum_hash: str
    transaction_id: str
    created_at: datetime
    chain_family: ChainFamily
    chain_key: str
    name: str
    description: str
    content_locator: str
    confirmed_at: int
    explorer_url: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "creator_address": self.creator_address,
            "quantum_hash": self.quantum_hash,
            "transaction_id": self.transaction_id,
            "created_at": self.created_at.isoformat(),
            "chain_family": self.chain_family.value,
            "chain_key": self.chain_key,
            "name": self.name,
            "description": self.description,
            "content_locator": self.content_locator,
            "confirmed_at": self.confirmed_at,
            "explorer_url": self.explorer_url,
        }


# ============================================================================
# Payment
# ============================================================================


@dataclass(frozen=True)
class PaymentResult:
    """A confirmed native-currency transfer"""

    transaction_id: str
    sender: str
    recipient: str
    amount: Decimal
    chain_family: ChainFamily
    chain_key: str
    confirmed_at: int
    explorer_url: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "sender": self.sender,
            "recipient": self.recipient,
            "amount": str(self.amount),
            "chain_family": self.chain_family.value,
            "chain_key": self.chain_key,
            "confirmed_at": self.confirmed_at,
            "explorer_url": self.explorer_url,
        }
