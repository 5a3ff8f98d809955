"""
Payment Workflow

Native-currency transfers from the connected wallet, and a second look at
transactions whose confirmation wait ran out. Both go through their own
TransactionCoordinator, so the mint workflow never sees their steps.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from .coordinator import TransactionCoordinator
from .enums import ChainFamily, TransactionKind
from .errors import ValidationError, WalletConnectionError
from .models import ConfirmationResult, NetworkConfig, PaymentResult
from .session import WalletSessionManager


logger = logging.getLogger(__name__)

# Smallest unit per whole coin: wei on EVM chains, microAlgos on the ledger-asset chain
NATIVE_DECIMALS = {
    ChainFamily.EVM: 18,
    ChainFamily.LEDGER_ASSET: 6,
}


def to_base_units(chain_family: ChainFamily, amount: Union[Decimal, str, int]) -> int:
    """Convert a whole-coin amount to the chain's smallest unit"""
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {amount}") from None
    if not value.is_finite() or value <= 0:
        raise ValidationError("Payment amount must be positive")

    scaled = value.scaleb(NATIVE_DECIMALS[chain_family])
    if scaled != scaled.to_integral_value():
        raise ValidationError(f"Amount has more than {NATIVE_DECIMALS[chain_family]} decimal places")
    return int(scaled)


class PaymentWorkflow:
    """Send native currency and re-check submitted transactions"""

    def __init__(
        self,
        sessions: WalletSessionManager,
        coordinator: Optional[TransactionCoordinator] = None,
        confirmation_budget: int = 10,
    ):
        self.sessions = sessions
        self.coordinator = coordinator or TransactionCoordinator(guard=sessions)
        self.confirmation_budget = confirmation_budget

    async def send(self, recipient: str, amount: Union[Decimal, str, int], note: Optional[str] = None) -> PaymentResult:
        """
        Transfer native currency from the connected address

        Args:
            recipient: Receiving address on the connected chain
            amount: Whole-coin amount (ETH, ALGO)
            note: Free-form note, kept only where the chain supports one

        Returns:
            PaymentResult of the confirmed transfer

        Raises:
            ValidationError: Bad recipient or amount
            WalletConnectionError: No wallet connected
            TransactionRejected, SubmissionError, StaleSessionError
            TransactionStatusUnknown: Submitted but the outcome could not be read
        """
        adapter = self.sessions.active_adapter
        network = self.sessions.active_network
        sender = self.sessions.session.address
        if adapter is None or network is None or sender is None:
            raise WalletConnectionError("Connect a wallet before sending a payment")

        value = to_base_units(network.chain_family, amount)
        params = {"sender": sender, "recipient": recipient, "value": value}
        if note:
            params["note"] = note
        pending = adapter.build_transaction(TransactionKind.PAYMENT, params)

        logger.info(f"Sending {amount} {network.native_currency_symbol} from {sender} to {recipient}")
        confirmation = await self.coordinator.run(adapter, pending, self.confirmation_budget)

        if self.sessions.active_adapter is adapter:
            await self.sessions.query_balance()

        return PaymentResult(
            transaction_id=confirmation.transaction_id,
            sender=sender,
            recipient=recipient,
            amount=Decimal(str(amount)),
            chain_family=network.chain_family,
            chain_key=network.chain_key,
            confirmed_at=confirmation.confirmed_at,
            explorer_url=network.explorer_tx_url(confirmation.transaction_id),
        )

    async def reconfirm(self, transaction_id: str) -> ConfirmationResult:
        """
        Wait again for a transaction that was already submitted

        Uses the connected network, or the selected one when no wallet is
        connected. Nothing is signed or sent.

        Raises:
            ConfirmationTimeout: Still not confirmed within the budget
            TransactionStatusUnknown: The node could not be asked
        """
        transaction_id = (transaction_id or "").strip()
        if not transaction_id:
            raise ValidationError("Transaction id is required")

        adapter = self.sessions.active_adapter or self.sessions.selected_adapter
        logger.info(f"Re-checking confirmation of {transaction_id} on {self.network.display_name}")
        return await self.coordinator.reconfirm(adapter, transaction_id, self.confirmation_budget)

    @property
    def network(self) -> NetworkConfig:
        """Network reconfirm runs against"""
        return self.sessions.active_network or self.sessions.selected_network
