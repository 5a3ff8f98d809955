"""
Transaction Schemas

Pydantic models for payments and confirmation re-checks.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from qchain_offchain.models import ConfirmationResult, NetworkConfig, PaymentResult


class PaymentRequest(BaseModel):
    """Send native currency from the connected wallet"""

    recipient: str = Field(description="Receiving address on the connected chain")
    amount: Decimal = Field(gt=0, description="Whole-coin amount (ETH, ALGO)")
    note: str | None = Field(None, max_length=1000, description="Transaction note (ledger-asset chain only)")


class PaymentResponse(BaseModel):
    """Result of a confirmed payment"""

    success: bool = True
    transaction_id: str
    sender: str
    recipient: str
    amount: Decimal
    chain_family: str
    chain_key: str
    confirmed_at: int = Field(description="Block number or confirmed round")
    explorer_url: str

    @classmethod
    def from_result(cls, result: PaymentResult) -> "PaymentResponse":
        return cls(**result.to_dict())


class ConfirmationResponse(BaseModel):
    """A transaction that reached finality"""

    transaction_id: str
    chain_key: str
    confirmed: bool = True
    confirmed_at: int = Field(description="Block number or confirmed round")
    explorer_url: str

    @classmethod
    def from_confirmation(cls, confirmation: ConfirmationResult, network: NetworkConfig) -> "ConfirmationResponse":
        return cls(
            transaction_id=confirmation.transaction_id,
            chain_key=network.chain_key,
            confirmed_at=confirmation.confirmed_at,
            explorer_url=network.explorer_tx_url(confirmation.transaction_id),
        )
