"""
Transaction Endpoints

FastAPI endpoints for native-currency payments and for re-checking the
confirmation of a transaction that was already submitted.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies.services import CoreServices, get_services
from api.schemas.session import ErrorResponse
from api.schemas.transactions import ConfirmationResponse, PaymentRequest, PaymentResponse


router = APIRouter()


@router.post(
    "/payment",
    response_model=PaymentResponse,
    summary="Send a payment",
    description=(
        "Build a native-currency transfer on the connected chain, have the wallet sign it, "
        "submit it and wait for confirmation. One payment runs at a time."
    ),
    responses={
        409: {"model": ErrorResponse, "description": "No wallet, user declined, session changed, or a payment is in flight"},
        422: {"model": ErrorResponse, "description": "Invalid recipient or amount"},
        502: {"model": ErrorResponse, "description": "The network rejected the transaction or its status could not be read"},
        504: {"model": ErrorResponse, "description": "Not confirmed in time; the payment may still complete"},
    },
)
async def send_payment(request: PaymentRequest, services: CoreServices = Depends(get_services)) -> PaymentResponse:
    """
    Send native currency through the connected wallet.

    On a `may_have_happened` failure, poll `/transactions/{transaction_id}/confirm`
    instead of sending again.
    """
    if services.payment_lock.locked():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A payment is already in progress")

    async with services.payment_lock:
        result = await services.payments.send(request.recipient, request.amount, note=request.note)

    return PaymentResponse.from_result(result)


@router.post(
    "/{transaction_id}/confirm",
    response_model=ConfirmationResponse,
    summary="Re-check a transaction",
    description=(
        "Wait again for a submitted transaction on the connected network, or the selected one "
        "when no wallet is connected. Nothing is signed or sent."
    ),
    responses={
        502: {"model": ErrorResponse, "description": "The node could not be asked"},
        504: {"model": ErrorResponse, "description": "Still not confirmed; try again later"},
    },
)
async def confirm_transaction(
    transaction_id: str,
    services: CoreServices = Depends(get_services),
) -> ConfirmationResponse:
    network = services.payments.network
    confirmation = await services.payments.reconfirm(transaction_id)
    return ConfirmationResponse.from_confirmation(confirmation, network)
