"""
Shared Enums

Single source of truth for enums used by the session manager, the chain
adapters, the mint workflow and the HTTP layer.
"""

from enum import Enum


# ============================================================================
# Chain Enums
# ============================================================================


class ChainFamily(str, Enum):
    """
    Structural category of a ledger

    - EVM: account/contract-based chain (Ethereum, Sepolia, local Hardhat)
    - LEDGER_ASSET: round-finality asset-based chain (Algorand)
    """

    EVM = "EVM"
    LEDGER_ASSET = "LEDGER_ASSET"


class TransactionKind(str, Enum):
    """Kinds of transactions an adapter can build"""

    MINT = "mint"
    PAYMENT = "payment"


# ============================================================================
# Session Enums
# ============================================================================


class SessionState(str, Enum):
    """
    Wallet session lifecycle

    Lifecycle:
    - DISCONNECTED: no address held
    - CONNECTING: waiting on the wallet to return an account
    - CONNECTED: address held, transactions may be signed
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# ============================================================================
# Transaction Lifecycle Enums
# ============================================================================


class CoordinatorStep(str, Enum):
    """Steps of one coordinated sign → submit → confirm call"""

    SIGN = "sign"
    SUBMIT = "submit"
    CONFIRM = "confirm"


class MintStage(str, Enum):
    """
    Mint attempt state machine

    Lifecycle:
    VALIDATING → HASH_PENDING → BUILDING → SIGNING → SUBMITTING → CONFIRMING
    → COMPLETED, or FAILED from any step.
    """

    VALIDATING = "validating"
    HASH_PENDING = "hash_pending"
    BUILDING = "building"
    SIGNING = "signing"
    SUBMITTING = "submitting"
    CONFIRMING = "confirming"
    COMPLETED = "completed"
    FAILED = "failed"


class Outcome(str, Enum):
    """
    What a failure means for the user

    - NOTHING_HAPPENED: rejected locally or by the user, nothing reached the chain
    - MAY_HAVE_HAPPENED: submitted but final state unknown, re-query before retrying
    - REJECTED_BY_CHAIN: the node refused the transaction
    - RETRYABLE: read-only lookup failed and can be retried
    """

    NOTHING_HAPPENED = "nothing_happened"
    MAY_HAVE_HAPPENED = "may_have_happened"
    REJECTED_BY_CHAIN = "rejected_by_chain"
    RETRYABLE = "retryable"
