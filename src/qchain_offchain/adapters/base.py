"""
Chain Adapter Contract

One capability set over two incompatible wallet protocols. Adapters are
stateless strategy objects: they hold a network config and collaborators,
never per-call or per-session state, and are shared by reference.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Callable, List, Mapping, Optional

from ..enums import ChainFamily, TransactionKind
from ..errors import ValidationError
from ..models import ConfirmationResult, NetworkConfig, OwnedAsset, PendingTransaction, SignedTransaction


AccountsListener = Callable[[List[str]], None]
ChainListener = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class ChainAdapter(ABC):
    """Connect, query, build, sign, submit and confirm against one network"""

    chain_family: ChainFamily
    supports_verification = False

    def __init__(self, network: NetworkConfig):
        if network.chain_family != self.chain_family:
            raise ValueError(
                f"{type(self).__name__} cannot serve {network.chain_family.value} network {network.chain_key}"
            )
        self.network = network

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @abstractmethod
    async def connect(self) -> str:
        """
        Ask the wallet for an account

        Returns:
            The connected address

        Raises:
            WalletConnectionError: No provider reachable or the user declined
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Best-effort remote teardown; never raises"""

    async def reconnect(self, stored_address: str) -> Optional[str]:
        """Silently restore a previous session; None when the wallet forgot it"""
        return None

    def subscribe(self, on_accounts_changed: AccountsListener, on_chain_changed: ChainListener) -> Unsubscribe:
        """Register wallet notification callbacks"""
        return lambda: None

    async def activate_network(self) -> None:
        """Make the wallet use this adapter's network"""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @abstractmethod
    async def query_balance(self, address: str) -> Decimal:
        """
        Native currency balance in whole units

        Raises:
            QueryError: Network or API failure
        """

    async def list_assets(self, address: str) -> List[OwnedAsset]:
        return []

    async def mint_fee(self) -> int:
        """Smallest-unit value attached to a mint transaction"""
        return 0

    async def verify_quantum_hash(self, asset_id: str, quantum_hash: str) -> bool:
        raise NotImplementedError(f"{type(self).__name__} has no verification capability")

    # ------------------------------------------------------------------
    # Transaction lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    def build_transaction(self, kind: TransactionKind, params: Mapping[str, Any]) -> PendingTransaction:
        """
        Construct a pending transaction without any I/O

        Raises:
            ValidationError: Missing or malformed parameters
        """

    @abstractmethod
    async def sign_transaction(self, pending: PendingTransaction) -> SignedTransaction:
        """
        Hand the transaction to the wallet for approval

        Raises:
            TransactionRejected: The user declined
            WalletConnectionError: The wallet session died mid-call
        """

    @abstractmethod
    async def submit_transaction(self, signed: SignedTransaction) -> str:
        """
        Broadcast a signed payload

        Returns:
            Transaction identifier

        Raises:
            SubmissionError: The node rejected the payload
            TransactionStatusUnknown: The call broke off after the payload may have been sent
        """

    @abstractmethod
    async def confirm_transaction(self, transaction_id: str, budget: int) -> ConfirmationResult:
        """
        Wait for the transaction to be final

        Raises:
            ConfirmationTimeout: Not final within the budget; state unknown
            TransactionStatusUnknown: The node could not be polled
        """

    @abstractmethod
    async def resolve_asset_id(self, confirmation: ConfirmationResult) -> str:
        """Identifier of the asset created by a confirmed mint"""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_variant(self, pending: PendingTransaction) -> None:
        if getattr(pending, "chain_family", None) != self.chain_family:
            raise ValidationError(
                f"{getattr(pending, 'tag', type(pending).__name__)} cannot be handled by {type(self).__name__}"
            )


def require(params: Mapping[str, Any], key: str) -> Any:
    """Fetch a required, non-empty parameter"""
    value = params.get(key)
    if value is None or (isinstance(value, (str, bytes)) and not value):
        raise ValidationError(f"Missing required parameter: {key}")
    return value
