"""
API Configuration

Centralized settings for the FastAPI application.
API metadata is hardcoded, while environment-specific settings load from .env file.
Wallet core settings (networks, hash service, confirmation budget) live in
qchain_offchain.config.CoreSettings under the QCHAIN_ prefix.
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


# Get the project root directory (one level up from api/)
PROJECT_ROOT = Path(__file__).parent.parent


class Settings(BaseSettings):
    """
    Application settings for the QChain API

    API metadata (title, description, version, contact) are hardcoded.
    Environment-specific settings are loaded from .env file.
    """

    # ============================================================================
    # API Metadata (hardcoded - versioned with code)
    # ============================================================================

    api_title: str = "QChain Wallet API"
    api_description: str = (
        "Wallet session and transaction lifecycle API for QChain. "
        "Connects EVM and Algorand wallets, mints NFTs carrying a quantum-resistant hash, "
        "and verifies recorded hashes on-chain."
    )
    api_version: str = "1.0.0"
    API_V1_STR: str = "/api/v1"

    # Contact information
    contact_name: str = "QChain"
    contact_url: str = "https://qchain.io"

    # ============================================================================
    # Environment Settings (loaded from .env)
    # ============================================================================

    environment: str = "development"  # development, staging, production
    api_port: int = 8000
    log_level: str = "INFO"

    api_key_dev: str = ""  # Empty rejects every request

    # Headless EVM signer; without it EVM connects fail with no provider
    evm_private_key: str | None = None

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"), env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    @property
    def contact(self) -> dict[str, str]:
        """FastAPI contact information"""
        return {"name": self.contact_name, "url": self.contact_url}

    @property
    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.environment.lower() == "development"


# ============================================================================
# Global settings instance
# ============================================================================

settings = Settings()
