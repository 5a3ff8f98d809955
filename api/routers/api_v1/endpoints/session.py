"""
Session Endpoints

FastAPI endpoints for the wallet session: connect, restore, disconnect,
switch network and balance.
"""

from fastapi import APIRouter, Depends

from api.dependencies.services import get_sessions
from api.schemas.session import (
    BalanceResponse,
    ConnectRequest,
    ErrorResponse,
    OwnedAssetResponse,
    SessionResponse,
    SwitchNetworkRequest,
)
from qchain_offchain.errors import StaleSessionError, WalletConnectionError
from qchain_offchain.session import WalletSessionManager


router = APIRouter()


@router.get(
    "",
    response_model=SessionResponse,
    summary="Get session state",
    description="Current wallet session snapshot. Never touches the wallet or the chain.",
)
async def get_session(sessions: WalletSessionManager = Depends(get_sessions)) -> SessionResponse:
    return SessionResponse.from_session(sessions.get_session_state())


@router.post(
    "/connect",
    response_model=SessionResponse,
    summary="Connect a wallet",
    description="Prompt the wallet for an account on a network. Switching chain family tears down the current session first.",
    responses={
        404: {"model": ErrorResponse, "description": "Unknown network"},
        409: {"model": ErrorResponse, "description": "No provider, or the user declined"},
    },
)
async def connect(
    request: ConnectRequest,
    sessions: WalletSessionManager = Depends(get_sessions),
) -> SessionResponse:
    session = await sessions.connect(request.chain_key)
    return SessionResponse.from_session(session)


@router.post(
    "/reconnect",
    response_model=SessionResponse,
    summary="Restore a previous session",
    description="Silently restore the last session of the network's chain family. Stays disconnected when there is nothing to restore.",
)
async def reconnect(
    request: ConnectRequest,
    sessions: WalletSessionManager = Depends(get_sessions),
) -> SessionResponse:
    await sessions.reconnect_session(request.chain_key)
    return SessionResponse.from_session(sessions.get_session_state())


@router.post(
    "/disconnect",
    response_model=SessionResponse,
    summary="Disconnect the wallet",
    description="Tear down the session and forget the stored address. Safe to call when already disconnected.",
)
async def disconnect(sessions: WalletSessionManager = Depends(get_sessions)) -> SessionResponse:
    session = await sessions.disconnect()
    return SessionResponse.from_session(session)


@router.post(
    "/switch",
    response_model=SessionResponse,
    summary="Switch network",
    description="Select another network. A live session is torn down, moved to the new network and reconnected.",
    responses={
        404: {"model": ErrorResponse, "description": "Unknown network"},
        409: {"model": ErrorResponse, "description": "Wallet refused the network change"},
    },
)
async def switch_network(
    request: SwitchNetworkRequest,
    sessions: WalletSessionManager = Depends(get_sessions),
) -> SessionResponse:
    session = await sessions.switch_network(request.chain_key)
    return SessionResponse.from_session(session)


@router.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Get balance",
    description="Native balance and owned assets of the connected address. Failed lookups degrade to zero and an empty list.",
    responses={409: {"model": ErrorResponse, "description": "No wallet connected"}},
)
async def get_balance(sessions: WalletSessionManager = Depends(get_sessions)) -> BalanceResponse:
    network = sessions.active_network
    if network is None:
        raise WalletConnectionError("No wallet connected")
    session = await sessions.refresh()
    if session.chain_key != network.chain_key or not session.is_connected:
        raise StaleSessionError("Wallet session changed while reading the balance")
    return BalanceResponse(
        address=session.address,
        chain_key=session.chain_key,
        balance=session.balance,
        currency=network.native_currency_symbol,
        assets=[
            OwnedAssetResponse(asset_id=asset.asset_id, amount=asset.amount, uri=asset.uri)
            for asset in session.assets
        ],
    )
