"""
Network Endpoints

Read-only view of the network registry.
"""

from fastapi import APIRouter, Depends

from api.dependencies.services import get_sessions
from api.schemas.session import NetworkListResponse, NetworkResponse
from qchain_offchain.session import WalletSessionManager


router = APIRouter()


@router.get(
    "",
    response_model=NetworkListResponse,
    summary="List supported networks",
)
async def list_networks(sessions: WalletSessionManager = Depends(get_sessions)) -> NetworkListResponse:
    return NetworkListResponse(
        networks=[NetworkResponse.from_config(network) for network in sessions.registry],
        selected_chain_key=sessions.selected_chain_key,
    )
