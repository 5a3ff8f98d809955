"""
Mint Schemas

Pydantic models for mint and verification requests and responses.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from qchain_offchain.models import MintResult


class MintRequest(BaseModel):
    """Mint an NFT from an image"""

    name: str = Field(description="NFT name (max 50 characters)")
    description: str = Field(description="NFT description (max 500 characters)")
    image_base64: str = Field(description="Image content, base64 encoded")
    quantum_hash: str | None = Field(
        None, description="Previously generated quantum hash; the hash service is called when omitted"
    )


class MintResponse(BaseModel):
    """Result of a confirmed mint"""

    success: bool = True
    asset_id: str = Field(description="Token id (EVM) or asset index (ledger-asset)")
    creator_address: str
    quantum_hash: str
    transaction_id: str
    created_at: datetime
    chain_family: str
    chain_key: str
    name: str
    description: str
    content_locator: str = Field(description="ipfs:// locator recorded on-chain")
    confirmed_at: int = Field(description="Block number or confirmed round")
    explorer_url: str

    @classmethod
    def from_result(cls, result: MintResult) -> "MintResponse":
        return cls(**result.to_dict())


class VerifyRequest(BaseModel):
    asset_id: str = Field(description="Token id to check")
    quantum_hash: str = Field(description="Hash expected to be recorded for the token")


class VerifyResponse(BaseModel):
    """Verification outcome"""

    asset_id: str
    supported: bool = Field(description="False when the selected chain cannot verify hashes")
    verified: bool | None = Field(None, description="On-chain result, None when unsupported")


class HashServiceResponse(BaseModel):
    url: str
    healthy: bool
