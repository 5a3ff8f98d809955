"""
Error Taxonomy

Every failure the core can raise, each tagged with an Outcome so callers can
tell "nothing happened" apart from "something may have happened" and from
"the chain rejected it".
"""

from typing import Optional

from .enums import Outcome


class QChainError(Exception):
    """Base class for all wallet core errors"""

    outcome = Outcome.NOTHING_HAPPENED
    default_message = "Operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        """Stable error kind name used by the HTTP layer"""
        return type(self).__name__

    @property
    def user_message(self) -> str:
        """Human-readable message including what the failure means"""
        return f"{self.message} ({_OUTCOME_HINTS[self.outcome]})"


class WalletConnectionError(QChainError):
    """No wallet provider reachable, the user declined, or the wallet session died"""

    default_message = "Wallet connection failed"


class NetworkMismatchError(QChainError):
    """The wallet is on a different chain than the selected network"""

    default_message = "Wallet is connected to the wrong network"

    def __init__(self, message: Optional[str] = None, expected: Optional[int] = None, actual: Optional[int] = None):
        self.expected = expected
        self.actual = actual
        if message is None and expected is not None:
            message = f"Wallet is on chain {actual}, expected chain {expected}"
        super().__init__(message)


class TransactionRejected(QChainError):
    """The user declined to sign"""

    default_message = "Transaction rejected by user"


class SubmissionError(QChainError):
    """The node refused the signed payload"""

    outcome = Outcome.REJECTED_BY_CHAIN
    default_message = "Transaction was rejected by the network"

    def __init__(self, message: Optional[str] = None, reason: Optional[str] = None):
        self.reason = reason
        if message is None and reason:
            message = f"Transaction was rejected by the network: {reason}"
        super().__init__(message)


class TransactionStatusUnknown(QChainError):
    """A transaction left the wallet but its final state could not be read"""

    outcome = Outcome.MAY_HAVE_HAPPENED
    default_message = "Transaction status could not be determined"

    def __init__(self, message: Optional[str] = None, transaction_id: Optional[str] = None):
        self.transaction_id = transaction_id
        if message is None and transaction_id:
            message = f"Status of transaction {transaction_id} could not be determined"
        super().__init__(message)


class ConfirmationTimeout(TransactionStatusUnknown):
    """Polling budget exhausted; the transaction may still confirm later"""

    default_message = "Transaction was not confirmed in time"

    def __init__(self, message: Optional[str] = None, transaction_id: Optional[str] = None):
        if message is None and transaction_id:
            message = f"Transaction {transaction_id} was not confirmed in time"
        super().__init__(message, transaction_id=transaction_id)


class ExternalServiceError(QChainError):
    """The hash-generation service is unreachable or answered badly"""

    default_message = "Hash service request failed"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ValidationError(QChainError):
    """Missing or malformed input, rejected before any network call"""

    default_message = "Invalid request"


class UnknownNetworkError(ValidationError):
    """The chain key is not in the network registry"""

    def __init__(self, chain_key: str):
        self.chain_key = chain_key
        super().__init__(f"Unknown network: {chain_key}")


class QueryError(QChainError):
    """Balance or info lookup failed; safe to retry"""

    outcome = Outcome.RETRYABLE
    default_message = "Chain query failed"


class StaleSessionError(QChainError):
    """The wallet session changed while a transaction was in flight"""

    default_message = "Wallet session changed during the transaction"

    def __init__(self, message: Optional[str] = None, transaction_id: Optional[str] = None):
        self.transaction_id = transaction_id
        super().__init__(message)

    @property
    def outcome(self) -> Outcome:  # type: ignore[override]
        if self.transaction_id:
            return Outcome.MAY_HAVE_HAPPENED
        return Outcome.NOTHING_HAPPENED


_OUTCOME_HINTS = {
    Outcome.NOTHING_HAPPENED: "nothing was sent to the network",
    Outcome.MAY_HAVE_HAPPENED: "the transaction may still complete, check its status before retrying",
    Outcome.REJECTED_BY_CHAIN: "the network rejected the transaction",
    Outcome.RETRYABLE: "lookup failed, try again",
}
