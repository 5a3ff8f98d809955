"""
Mint Workflow

One mint attempt moves through

    Validating -> HashPending -> Building -> Signing -> Submitting -> Confirming
    -> Completed | Failed

Validation happens before any network call. The quantum hash is fetched
once per request and stored on it, so a retried request does not hit the
hash service again. A result is only produced for a confirmed mint.
"""

import hashlib
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from .adapters.base import ChainAdapter
from .coordinator import TransactionCoordinator
from .enums import CoordinatorStep, MintStage, TransactionKind
from .errors import QChainError, QueryError, TransactionStatusUnknown, ValidationError, WalletConnectionError
from .hash_client import ExternalHashClient
from .models import MAX_DESCRIPTION_LENGTH, MAX_NAME_LENGTH, MintRequest, MintResult, NetworkConfig
from .session import WalletSessionManager


logger = logging.getLogger(__name__)

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
LOCATOR_BODY_LENGTH = 44

_STEP_STAGES = {
    CoordinatorStep.SIGN: MintStage.SIGNING,
    CoordinatorStep.SUBMIT: MintStage.SUBMITTING,
    CoordinatorStep.CONFIRM: MintStage.CONFIRMING,
}


def content_locator(attempt_id: str, name: str, quantum_hash: str) -> str:
    """Deterministic ipfs://Qm... locator for one mint attempt"""
    digest = hashlib.sha256(f"{attempt_id}|{name}|{quantum_hash}".encode("utf-8")).digest()
    number = int.from_bytes(digest, "big")
    chars = []
    while number and len(chars) < LOCATOR_BODY_LENGTH:
        number, remainder = divmod(number, 58)
        chars.append(BASE58_ALPHABET[remainder])
    body = "".join(chars).ljust(LOCATOR_BODY_LENGTH, BASE58_ALPHABET[0])
    return f"ipfs://Qm{body}"


class MintWorkflow:
    """Mint a quantum-hashed NFT through the active wallet session"""

    def __init__(
        self,
        sessions: WalletSessionManager,
        hash_client: ExternalHashClient,
        coordinator: Optional[TransactionCoordinator] = None,
        confirmation_budget: int = 10,
        on_stage: Optional[Callable[[MintStage], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.sessions = sessions
        self.hash_client = hash_client
        self.coordinator = coordinator or TransactionCoordinator(guard=sessions)
        self._watch_steps(self.coordinator)
        self.confirmation_budget = confirmation_budget
        self.on_stage = on_stage
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.stage: Optional[MintStage] = None
        self.failure: Optional[Exception] = None

    async def mint(self, request: MintRequest) -> MintResult:
        """
        Run a full mint attempt

        Args:
            request: Name, description and image; quantum_hash is filled in

        Returns:
            MintResult of the confirmed mint

        Raises:
            ValidationError: Missing or oversized fields
            WalletConnectionError: No wallet connected
            ExternalServiceError: Hash service failed
            TransactionRejected, SubmissionError, StaleSessionError
            TransactionStatusUnknown: Submitted or confirmed but the outcome could not
                be read (ConfirmationTimeout when the budget ran out)
        """
        self.failure = None
        try:
            result = await self._run(request)
        except QChainError as e:
            self.failure = e
            logger.error(f"Mint of '{request.name}' failed during {self.stage.value}: {e.message}")
            self._set_stage(MintStage.FAILED)
            raise
        except Exception as e:
            self.failure = e
            logger.exception(f"Mint of '{request.name}' failed unexpectedly during {self.stage.value}")
            self._set_stage(MintStage.FAILED)
            raise

        self._set_stage(MintStage.COMPLETED)
        logger.info(f"Minted asset {result.asset_id} on {result.chain_key} in {result.transaction_id}")
        return result

    async def verify(self, asset_id: str, quantum_hash: str) -> Optional[bool]:
        """
        Check an asset's recorded quantum hash

        Returns:
            True/False from the chain, or None when the chain family has no
            verification capability
        """
        adapter = self.sessions.active_adapter or self.sessions.selected_adapter
        if not adapter.supports_verification:
            return None
        if not asset_id or not quantum_hash:
            raise ValidationError("Asset id and quantum hash are required")
        return await adapter.verify_quantum_hash(asset_id, quantum_hash)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run(self, request: MintRequest) -> MintResult:
        self._set_stage(MintStage.VALIDATING)
        adapter, network, address = self._validate(request)
        generation = self.sessions.capture_generation()

        if not request.quantum_hash:
            self._set_stage(MintStage.HASH_PENDING)
            request.quantum_hash = await self.hash_client.generate_hash(
                request.image_bytes, request.name, request.description
            )
            self.sessions.verify_generation(generation)

        self._set_stage(MintStage.BUILDING)
        locator = content_locator(uuid.uuid4().hex, request.name, request.quantum_hash)
        fee = await adapter.mint_fee()
        pending = adapter.build_transaction(
            TransactionKind.MINT,
            {
                "sender": address,
                "name": request.name,
                "description": request.description,
                "token_uri": locator,
                "quantum_hash": request.quantum_hash,
                "value": fee,
            },
        )

        confirmation = await self.coordinator.run(adapter, pending, self.confirmation_budget)

        try:
            asset_id = await adapter.resolve_asset_id(confirmation)
        except QueryError as e:
            raise TransactionStatusUnknown(
                f"Mint {confirmation.transaction_id} confirmed but its asset id could not be read: {e.message}",
                transaction_id=confirmation.transaction_id,
            ) from e

        return MintResult(
            asset_id=asset_id,
            creator_address=address,
            quantum_hash=request.quantum_hash,
            transaction_id=confirmation.transaction_id,
            created_at=self._clock(),
            chain_family=network.chain_family,
            chain_key=network.chain_key,
            name=request.name,
            description=request.description,
            content_locator=locator,
            confirmed_at=confirmation.confirmed_at,
            explorer_url=network.explorer_tx_url(confirmation.transaction_id),
        )

    def _validate(self, request: MintRequest) -> Tuple[ChainAdapter, NetworkConfig, str]:
        name = (request.name or "").strip()
        description = (request.description or "").strip()
        if not name:
            raise ValidationError("NFT name is required")
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationError(f"NFT name must be at most {MAX_NAME_LENGTH} characters")
        if not description:
            raise ValidationError("NFT description is required")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(f"NFT description must be at most {MAX_DESCRIPTION_LENGTH} characters")
        if not request.image_bytes:
            raise ValidationError("NFT image is required")

        adapter = self.sessions.active_adapter
        network = self.sessions.active_network
        address = self.sessions.session.address
        if adapter is None or network is None or address is None:
            raise WalletConnectionError("Connect a wallet before minting")

        request.name = name
        request.description = description
        return adapter, network, address

    def _watch_steps(self, coordinator: TransactionCoordinator) -> None:
        """Report coordinator steps as mint stages, keeping any callback already set"""
        previous = coordinator.on_step

        def on_step(step: CoordinatorStep) -> None:
            self._on_step(step)
            if previous is not None:
                previous(step)

        coordinator.on_step = on_step

    def _on_step(self, step: CoordinatorStep) -> None:
        self._set_stage(_STEP_STAGES[step])

    def _set_stage(self, stage: MintStage) -> None:
        self.stage = stage
        if self.on_stage is not None:
            self.on_stage(stage)
