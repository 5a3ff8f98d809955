"""
Core Configuration

Settings for the wallet core, loaded from environment variables prefixed
with QCHAIN_ or from the project .env file.
"""

from decimal import Decimal
from pathlib import Path
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .networks import DEFAULT_CHAIN_KEY, NetworkRegistry


PROJECT_ROOT = Path(__file__).parent.parent.parent


class CoreSettings(BaseSettings):
    """
    Settings for adapters, the hash client and the mint workflow
    """

    # ============================================================================
    # Networks
    # ============================================================================

    default_chain_key: str = DEFAULT_CHAIN_KEY
    networks_file: Optional[Path] = None
    nft_contract_addresses: Dict[str, str] = Field(
        default_factory=dict, description="Chain key → QuantumNFT contract address overrides"
    )

    # ============================================================================
    # Hash service
    # ============================================================================

    hash_service_url: str = "https://qchain-quantum-pqc-backend.onrender.com"
    hash_service_timeout: float = 60.0

    # ============================================================================
    # Transactions
    # ============================================================================

    confirmation_rounds: int = Field(default=10, ge=1)
    evm_receipt_timeout: float = 120.0
    evm_gas_buffer_percent: int = Field(default=150, ge=100)
    default_mint_price_eth: Decimal = Decimal("0.001")
    ledger_unit_name: str = "QNFT"
    ledger_validity_rounds: int = 1000
    http_timeout: float = 30.0

    # ============================================================================
    # Session persistence
    # ============================================================================

    state_file: Path = PROJECT_ROOT / ".qchain" / "session.json"

    model_config = SettingsConfigDict(
        env_prefix="QCHAIN_",
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def build_registry(self) -> NetworkRegistry:
        """Network registry with file and contract-address overrides applied"""
        registry = NetworkRegistry.from_file(self.networks_file) if self.networks_file else NetworkRegistry()
        if self.nft_contract_addresses:
            registry = registry.with_contract_addresses(self.nft_contract_addresses)
        return registry
