"""
Transaction Coordinator

Drives one pending transaction through sign -> submit -> confirm against a
chain adapter. Steps run strictly in order and nothing is retried: a signed
payload is submitted at most once, and once submitted a transaction cannot be
withdrawn, so every failure after submit carries the transaction id.
"""

import logging
from typing import Callable, Optional, Protocol

from .adapters.base import ChainAdapter
from .enums import CoordinatorStep
from .errors import StaleSessionError
from .models import ConfirmationResult, PendingTransaction


logger = logging.getLogger(__name__)


class SessionGuard(Protocol):
    def capture_generation(self) -> int:
        ...

    def verify_generation(self, generation: int, transaction_id: Optional[str] = None) -> None:
        ...


class TransactionCoordinator:
    """Sequential sign/submit/confirm driver"""

    def __init__(
        self,
        guard: Optional[SessionGuard] = None,
        on_step: Optional[Callable[[CoordinatorStep], None]] = None,
    ):
        """
        Args:
            guard: Session manager checked before submit and before confirm
            on_step: Called as each step starts
        """
        self.guard = guard
        self.on_step = on_step

    async def run(
        self,
        adapter: ChainAdapter,
        pending: PendingTransaction,
        confirmation_budget: int,
    ) -> ConfirmationResult:
        """
        Sign, submit and confirm a transaction

        Raises:
            TransactionRejected: User declined signing; nothing was sent
            SubmissionError: Node rejected the payload
            ConfirmationTimeout: Budget exhausted; final state unknown
            TransactionStatusUnknown: Submit or confirm broke off; final state unknown
            StaleSessionError: Session changed mid-flight
        """
        generation = self.guard.capture_generation() if self.guard else None

        self._step(CoordinatorStep.SIGN)
        signed = await adapter.sign_transaction(pending)
        self._verify(generation)

        self._step(CoordinatorStep.SUBMIT)
        transaction_id = await adapter.submit_transaction(signed)
        logger.info(f"{pending.tag} submitted as {transaction_id}")

        try:
            self._verify(generation, transaction_id)
        except StaleSessionError:
            logger.warning(f"Session changed after submitting {transaction_id}, not waiting for confirmation")
            raise

        self._step(CoordinatorStep.CONFIRM)
        return await adapter.confirm_transaction(transaction_id, confirmation_budget)

    async def reconfirm(self, adapter: ChainAdapter, transaction_id: str, confirmation_budget: int) -> ConfirmationResult:
        """Poll an already submitted transaction again with a fresh budget"""
        self._step(CoordinatorStep.CONFIRM)
        return await adapter.confirm_transaction(transaction_id, confirmation_budget)

    def _step(self, step: CoordinatorStep) -> None:
        if self.on_step is not None:
            self.on_step(step)

    def _verify(self, generation: Optional[int], transaction_id: Optional[str] = None) -> None:
        if self.guard is not None and generation is not None:
            self.guard.verify_generation(generation, transaction_id)
