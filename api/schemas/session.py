"""
Session Schemas

Pydantic models for wallet session and network requests and responses.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from qchain_offchain.models import NetworkConfig, WalletSession


# ============================================================================
# Network Schemas
# ============================================================================


class NetworkResponse(BaseModel):
    """Supported network"""

    chain_key: str = Field(description="Registry key (EVM chain id or ledger network name)")
    chain_family: str = Field(description="EVM or LEDGER_ASSET")
    display_name: str
    endpoint_url: str
    explorer_url: str
    native_currency_symbol: str
    is_testnet: bool
    chain_id: int = Field(description="EVM chain id, 0 for the ledger-asset family")
    nft_contract_address: str | None = Field(None, description="QuantumNFT contract (EVM only)")

    @classmethod
    def from_config(cls, network: NetworkConfig) -> "NetworkResponse":
        return cls(**{key: value for key, value in network.to_dict().items() if key != "indexer_url"})


class NetworkListResponse(BaseModel):
    networks: list[NetworkResponse]
    selected_chain_key: str = Field(description="Network used when a request names none")


# ============================================================================
# Session Schemas
# ============================================================================


class ConnectRequest(BaseModel):
    """Connect or restore a wallet session"""

    chain_key: str | None = Field(None, description="Network to connect; defaults to the selected network")


class SwitchNetworkRequest(BaseModel):
    chain_key: str = Field(description="Network to switch to")


class OwnedAssetResponse(BaseModel):
    asset_id: str
    amount: int
    uri: str | None = None


class SessionResponse(BaseModel):
    """Snapshot of the wallet session"""

    state: str = Field(description="disconnected, connecting or connected")
    chain_family: str | None = None
    chain_key: str | None = None
    address: str | None = None
    connected_at: datetime | None = None
    balance: Decimal | None = Field(None, description="Native balance in whole units, when loaded")
    assets: list[OwnedAssetResponse] = Field(default_factory=list)
    generation: int = Field(description="Changes whenever the session connects or disconnects")

    @classmethod
    def from_session(cls, session: WalletSession) -> "SessionResponse":
        return cls(
            state=session.state.value,
            chain_family=session.chain_family.value if session.chain_family else None,
            chain_key=session.chain_key,
            address=session.address,
            connected_at=session.connected_at,
            balance=session.balance,
            assets=[
                OwnedAssetResponse(asset_id=asset.asset_id, amount=asset.amount, uri=asset.uri)
                for asset in session.assets
            ],
            generation=session.generation,
        )


class BalanceResponse(BaseModel):
    """Balance of the connected address"""

    address: str
    chain_key: str
    balance: Decimal = Field(description="Native balance in whole units")
    currency: str = Field(description="Native currency symbol")
    assets: list[OwnedAssetResponse] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Error body for wallet core failures"""

    detail: str = Field(description="Human-readable message")
    error: str = Field(description="Error kind")
    outcome: str = Field(description="nothing_happened, may_have_happened, rejected_by_chain or retryable")
    transaction_id: str | None = None
    reason: str | None = None
