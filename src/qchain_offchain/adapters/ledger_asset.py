"""
Ledger-Asset Chain Adapter

Round-finality chain modelled on Algorand. Chain I/O goes through the algod
REST API; signing is delegated to a wallet-connect session. A transaction is
final once the node reports a confirmed round, so confirmation polls round by
round within a fixed budget.
"""

import base64
import binascii
import hashlib
import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ..enums import ChainFamily, TransactionKind
from ..errors import (
    ConfirmationTimeout,
    QueryError,
    SubmissionError,
    TransactionRejected,
    TransactionStatusUnknown,
    ValidationError,
    WalletConnectionError,
)
from ..models import (
    ConfirmationResult,
    LedgerAssetCreate,
    LedgerPayment,
    NetworkConfig,
    OwnedAsset,
    PendingTransaction,
    SignedTransaction,
)
from ..providers import SESSION_DEAD_CODES, LedgerWalletConnector, ProviderRpcError
from .base import AccountsListener, ChainAdapter, ChainListener, Unsubscribe, require


logger = logging.getLogger(__name__)

MICRO_UNITS = Decimal(1_000_000)

ADDRESS_LENGTH = 58
MAX_ASSET_NAME_BYTES = 32
MAX_UNIT_NAME_BYTES = 8
MAX_ASSET_URL_BYTES = 96
MAX_NOTE_BYTES = 1024


def is_valid_address(address: str) -> bool:
    """58-character base32 account address (32-byte key plus 4-byte checksum)"""
    if not isinstance(address, str) or len(address) != ADDRESS_LENGTH:
        return False
    try:
        return len(base64.b32decode(address + "======")) == 36
    except (binascii.Error, ValueError):
        return False


def _truncate_utf8(value: str, limit: int) -> str:
    return value.encode("utf-8")[:limit].decode("utf-8", errors="ignore")


class LedgerAssetAdapter(ChainAdapter):
    """Adapter for the round-finality asset chain"""

    chain_family = ChainFamily.LEDGER_ASSET

    def __init__(
        self,
        network: NetworkConfig,
        connector: Optional[LedgerWalletConnector],
        unit_name: str = "QNFT",
        validity_rounds: int = 1000,
        timeout: float = 30.0,
        api_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the adapter

        Args:
            network: Ledger-asset network configuration
            connector: Wallet-connect session, None when unavailable
            unit_name: Unit name given to minted assets
            validity_rounds: Rounds a built transaction stays valid
            timeout: HTTP timeout for algod requests
            api_token: Optional algod API token
            transport: Custom httpx transport (tests)
        """
        super().__init__(network)
        self._connector = connector
        self._unit_name = unit_name
        self._validity_rounds = validity_rounds
        self._timeout = timeout
        self._headers = {"X-Algo-API-Token": api_token} if api_token else {}
        self._transport = transport

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> str:
        connector = self._require_connector()
        try:
            accounts = await connector.connect()
        except ProviderRpcError as e:
            if e.user_rejected:
                raise WalletConnectionError("User declined the wallet connection request") from e
            raise WalletConnectionError(f"Wallet connection failed: {e.message}") from e

        if not accounts:
            raise WalletConnectionError("Wallet returned no accounts")
        if not is_valid_address(accounts[0]):
            raise WalletConnectionError(f"Wallet returned an invalid address: {accounts[0]}")
        return accounts[0]

    async def reconnect(self, stored_address: str) -> Optional[str]:
        if self._connector is None:
            return None
        try:
            accounts = await self._connector.reconnect_session()
        except ProviderRpcError as e:
            logger.warning(f"Silent reconnect failed on {self.network.display_name}: {e.message}")
            return None

        if not accounts:
            return None
        if stored_address in accounts:
            return stored_address
        return accounts[0]

    async def disconnect(self) -> None:
        if self._connector is None:
            return
        try:
            await self._connector.disconnect()
        except ProviderRpcError as e:
            logger.info(f"Remote wallet session did not close cleanly: {e.message}")

    def subscribe(self, on_accounts_changed: AccountsListener, on_chain_changed: ChainListener) -> Unsubscribe:
        if self._connector is None:
            return lambda: None
        return self._connector.on_disconnect(lambda: on_accounts_changed([]))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query_balance(self, address: str) -> Decimal:
        account = await self._account_info(address)
        return Decimal(int(account.get("amount", 0))) / MICRO_UNITS

    async def list_assets(self, address: str) -> List[OwnedAsset]:
        account = await self._account_info(address)
        return [
            OwnedAsset(asset_id=str(holding["asset-id"]), amount=int(holding.get("amount", 0)))
            for holding in account.get("assets", [])
            if int(holding.get("amount", 0)) > 0
        ]

    async def _account_info(self, address: str) -> Dict[str, Any]:
        async with self._client() as client:
            return await self._get_json(client, f"/v2/accounts/{address}")

    # ------------------------------------------------------------------
    # Transaction lifecycle
    # ------------------------------------------------------------------

    def build_transaction(self, kind: TransactionKind, params: Mapping[str, Any]) -> PendingTransaction:
        sender = require(params, "sender")
        if not is_valid_address(sender):
            raise ValidationError(f"Invalid sender address: {sender}")

        if kind == TransactionKind.MINT:
            return self._build_asset_create(sender, params)

        if kind == TransactionKind.PAYMENT:
            receiver = require(params, "recipient")
            if not is_valid_address(receiver):
                raise ValidationError(f"Invalid recipient address: {receiver}")
            amount = int(params.get("value", 0))
            if amount <= 0:
                raise ValidationError("Payment value must be positive")
            note = params.get("note")
            return LedgerPayment(
                sender=sender,
                receiver=receiver,
                amount_micro=amount,
                note=note.encode("utf-8") if isinstance(note, str) else note,
            )

        raise ValidationError(f"Unsupported transaction kind: {kind}")

    def _build_asset_create(self, sender: str, params: Mapping[str, Any]) -> LedgerAssetCreate:
        name = require(params, "name")
        quantum_hash = require(params, "quantum_hash")
        asset_url = require(params, "token_uri")
        unit_name = params.get("unit_name") or self._unit_name

        if len(unit_name.encode("utf-8")) > MAX_UNIT_NAME_BYTES:
            raise ValidationError(f"Unit name exceeds {MAX_UNIT_NAME_BYTES} bytes: {unit_name}")
        if len(asset_url.encode("utf-8")) > MAX_ASSET_URL_BYTES:
            raise ValidationError(f"Asset URL exceeds {MAX_ASSET_URL_BYTES} bytes")

        note = json.dumps({"name": name, "quantum_hash": quantum_hash}, separators=(",", ":")).encode("utf-8")
        if len(note) > MAX_NOTE_BYTES:
            raise ValidationError(f"Transaction note exceeds {MAX_NOTE_BYTES} bytes")

        return LedgerAssetCreate(
            sender=sender,
            asset_name=_truncate_utf8(name, MAX_ASSET_NAME_BYTES),
            unit_name=unit_name,
            asset_url=asset_url,
            metadata_hash=hashlib.sha256(quantum_hash.encode("utf-8")).digest(),
            note=note,
        )

    async def sign_transaction(self, pending: PendingTransaction) -> SignedTransaction:
        self._check_variant(pending)
        connector = self._require_connector()

        async with self._client() as client:
            suggested = await self._get_json(client, "/v2/transactions/params")
        txn = self._wallet_transaction(pending, suggested)

        try:
            blobs = await connector.sign_transactions([[{"txn": txn, "signers": [pending.sender]}]])
        except ProviderRpcError as e:
            if e.user_rejected:
                raise TransactionRejected() from e
            if e.code in SESSION_DEAD_CODES:
                raise WalletConnectionError(f"Wallet session ended: {e.message}") from e
            raise TransactionRejected(f"Wallet could not sign the transaction: {e.message}") from e

        if not blobs:
            raise TransactionRejected("Wallet returned no signed transaction")
        return SignedTransaction(payload=b"".join(blobs), tag=pending.tag, sender=pending.sender)

    def _wallet_transaction(self, pending: PendingTransaction, suggested: Dict[str, Any]) -> Dict[str, Any]:
        first_round = int(suggested["last-round"])
        txn: Dict[str, Any] = {
            "snd": pending.sender,
            "fee": max(int(suggested.get("min-fee", 1000)), int(suggested.get("fee", 0))),
            "fv": first_round,
            "lv": first_round + self._validity_rounds,
            "gen": suggested["genesis-id"],
            "gh": suggested["genesis-hash"],
        }
        if pending.note:
            txn["note"] = base64.b64encode(pending.note).decode("ascii")

        if isinstance(pending, LedgerAssetCreate):
            txn["type"] = "acfg"
            txn["apar"] = {
                "t": pending.total,
                "dc": pending.decimals,
                "df": pending.default_frozen,
                "un": pending.unit_name,
                "an": pending.asset_name,
                "au": pending.asset_url,
                "m": pending.sender,
                "r": pending.sender,
            }
            if pending.metadata_hash:
                txn["apar"]["am"] = base64.b64encode(pending.metadata_hash).decode("ascii")
        else:
            txn["type"] = "pay"
            txn["rcv"] = pending.receiver
            txn["amt"] = pending.amount_micro
        return txn

    async def submit_transaction(self, signed: SignedTransaction) -> str:
        if signed.tag not in (LedgerAssetCreate.tag, LedgerPayment.tag):
            raise ValidationError(f"{signed.tag} cannot be submitted to {self.network.display_name}")
        payload = signed.consume()

        async with self._client() as client:
            try:
                response = await client.post(
                    "/v2/transactions",
                    content=payload,
                    headers={"Content-Type": "application/x-binary"},
                )
            except httpx.ConnectError as e:
                raise SubmissionError(reason=f"algod unreachable: {e}") from e
            except httpx.HTTPError as e:
                # The request may have reached the node
                raise TransactionStatusUnknown(f"Submission to algod was interrupted: {e}") from e

        if response.status_code >= 400:
            raise SubmissionError(reason=_error_message(response))

        transaction_id = response.json()["txId"]
        logger.info(f"Submitted {transaction_id} to {self.network.display_name}")
        return transaction_id

    async def confirm_transaction(self, transaction_id: str, budget: int) -> ConfirmationResult:
        try:
            return await self._poll_confirmation(transaction_id, budget)
        except QueryError as e:
            logger.warning(f"Lost track of {transaction_id} while polling: {e.message}")
            raise TransactionStatusUnknown(
                f"Transaction {transaction_id} was submitted but its status could not be read: {e.message}",
                transaction_id=transaction_id,
            ) from e

    async def _poll_confirmation(self, transaction_id: str, budget: int) -> ConfirmationResult:
        async with self._client() as client:
            status = await self._get_json(client, "/v2/status")
            current_round = int(status["last-round"])

            for advance in range(budget + 1):
                info = await self._get_json(client, f"/v2/transactions/pending/{transaction_id}")
                confirmed_round = int(info.get("confirmed-round") or 0)
                if confirmed_round > 0:
                    logger.info(f"Transaction {transaction_id} confirmed in round {confirmed_round}")
                    return ConfirmationResult(transaction_id=transaction_id, confirmed_at=confirmed_round, raw=info)

                pool_error = info.get("pool-error")
                if pool_error:
                    raise SubmissionError(reason=pool_error)

                if advance == budget:
                    break
                current_round += 1
                await self._get_json(client, f"/v2/status/wait-for-block-after/{current_round}")

        logger.warning(f"Transaction {transaction_id} not confirmed after {budget} rounds")
        raise ConfirmationTimeout(
            f"Transaction {transaction_id} not confirmed after {budget} rounds",
            transaction_id=transaction_id,
        )

    async def resolve_asset_id(self, confirmation: ConfirmationResult) -> str:
        asset_index = confirmation.raw.get("asset-index")
        if not asset_index:
            raise QueryError(f"Confirmed transaction {confirmation.transaction_id} created no asset")
        return str(asset_index)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_connector(self) -> LedgerWalletConnector:
        if self._connector is None:
            raise WalletConnectionError("No wallet-connect session available for this network")
        return self._connector

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.network.endpoint_url,
            timeout=self._timeout,
            headers=self._headers,
            transport=self._transport,
        )

    async def _get_json(self, client: httpx.AsyncClient, path: str) -> Dict[str, Any]:
        try:
            response = await client.get(path)
        except httpx.HTTPError as e:
            raise QueryError(f"algod request {path} failed: {e}") from e
        if response.status_code >= 400:
            raise QueryError(f"algod request {path} failed: {_error_message(response)}")
        try:
            return response.json()
        except ValueError as e:
            raise QueryError(f"algod request {path} returned invalid JSON") from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}"
