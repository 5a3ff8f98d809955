"""
Mint Endpoints

FastAPI endpoints for minting quantum-hashed NFTs and verifying recorded hashes.
"""

import base64
import binascii

from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies.services import CoreServices, get_services
from api.schemas.mint import HashServiceResponse, MintRequest, MintResponse, VerifyRequest, VerifyResponse
from api.schemas.session import ErrorResponse
from qchain_offchain.errors import ValidationError
from qchain_offchain.models import MintRequest as CoreMintRequest


router = APIRouter()


@router.post(
    "",
    response_model=MintResponse,
    summary="Mint an NFT",
    description=(
        "Generate a quantum hash for the image, build the mint transaction for the connected chain, "
        "have the wallet sign it, submit it and wait for confirmation. One mint runs at a time."
    ),
    responses={
        409: {"model": ErrorResponse, "description": "No wallet, user declined, session changed, or a mint is in flight"},
        422: {"model": ErrorResponse, "description": "Invalid name, description or image"},
        502: {"model": ErrorResponse, "description": "Hash service failed or the network rejected the transaction"},
        504: {"model": ErrorResponse, "description": "Not confirmed in time; the mint may still complete"},
    },
)
async def mint_nft(request: MintRequest, services: CoreServices = Depends(get_services)) -> MintResponse:
    """
    Mint an NFT through the connected wallet.

    **Outcomes on failure** (see the `outcome` field):
    - `nothing_happened`: validation, declined signature, session changed before submit
    - `rejected_by_chain`: the node refused the transaction
    - `may_have_happened`: submitted but not confirmed; check `transaction_id` before retrying
    """
    if services.mint_lock.locked():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A mint is already in progress")

    try:
        image_bytes = base64.b64decode(request.image_base64, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image must be valid base64") from None

    core_request = CoreMintRequest(
        name=request.name,
        description=request.description,
        image_bytes=image_bytes,
        quantum_hash=request.quantum_hash or None,
    )
    async with services.mint_lock:
        result = await services.mint.mint(core_request)

    return MintResponse.from_result(result)


@router.post(
    "/verify",
    response_model=VerifyResponse,
    summary="Verify a quantum hash",
    description="Check the hash recorded for a token. Only EVM networks can verify; others report supported=false.",
)
async def verify_hash(request: VerifyRequest, services: CoreServices = Depends(get_services)) -> VerifyResponse:
    verified = await services.mint.verify(request.asset_id, request.quantum_hash)
    return VerifyResponse(asset_id=request.asset_id, supported=verified is not None, verified=verified)


@router.get(
    "/hash-service",
    response_model=HashServiceResponse,
    summary="Hash service health",
)
async def hash_service_health(services: CoreServices = Depends(get_services)) -> HashServiceResponse:
    healthy = await services.hash_client.check_health()
    return HashServiceResponse(url=services.hash_client.base_url, healthy=healthy)
