"""
Error Mapping

Translates wallet core errors into HTTP responses. The body always carries
the error kind and its outcome so clients can tell "nothing happened" from
"the transaction may still complete".
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from qchain_offchain.errors import (
    ConfirmationTimeout,
    ExternalServiceError,
    NetworkMismatchError,
    QChainError,
    QueryError,
    StaleSessionError,
    SubmissionError,
    TransactionRejected,
    TransactionStatusUnknown,
    UnknownNetworkError,
    ValidationError,
    WalletConnectionError,
)


logger = logging.getLogger(__name__)

# Checked in order; subclasses before their bases
ERROR_STATUS: list[tuple[type[QChainError], int]] = [
    (UnknownNetworkError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (WalletConnectionError, status.HTTP_409_CONFLICT),
    (NetworkMismatchError, status.HTTP_409_CONFLICT),
    (StaleSessionError, status.HTTP_409_CONFLICT),
    (TransactionRejected, status.HTTP_409_CONFLICT),
    (SubmissionError, status.HTTP_502_BAD_GATEWAY),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
    (QueryError, status.HTTP_502_BAD_GATEWAY),
    (ConfirmationTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (TransactionStatusUnknown, status.HTTP_502_BAD_GATEWAY),
]


def status_for(error: QChainError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def error_body(error: QChainError) -> dict:
    body = {"detail": error.user_message, "error": error.kind, "outcome": error.outcome.value}
    transaction_id = getattr(error, "transaction_id", None)
    if transaction_id:
        body["transaction_id"] = transaction_id
    reason = getattr(error, "reason", None)
    if reason:
        body["reason"] = reason
    return body


async def qchain_error_handler(request: Request, exc: QChainError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.kind}: {exc.message}")
    return JSONResponse(status_code=status_code, content=error_body(exc))
