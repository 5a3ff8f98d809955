"""
Test cases for the ledger-asset adapter against a mock algod node
"""

import base64
import hashlib
import json
from decimal import Decimal

import httpx
import pytest

from qchain_offchain.adapters.ledger_asset import LedgerAssetAdapter, is_valid_address
from qchain_offchain.enums import Outcome, TransactionKind
from qchain_offchain.errors import (
    ConfirmationTimeout,
    QueryError,
    SubmissionError,
    TransactionRejected,
    TransactionStatusUnknown,
    ValidationError,
    WalletConnectionError,
)
from qchain_offchain.models import ConfirmationResult, EVMCall, SignedTransaction
from qchain_offchain.networks import NetworkRegistry
from qchain_offchain.providers import ProviderRpcError

from tests.mocks import EVM_ADDRESS, LEDGER_ADDRESS, LEDGER_ADDRESS_2, MockLedgerConnector


TXID = "ZTGB6HWUJTXLOGGFNMGRBEIUM3NCMLNWBMJFJIHXDWMF6HQI5B3Q"
GENESIS_HASH = "SGO1GKSzyE7IEPItTxCByw9x8FmnrCDexi9/cOUJOiI="


class MockAlgod:
    """In-memory algod node served through httpx.MockTransport"""

    def __init__(self, last_round: int = 1000):
        self.last_round = last_round
        self.confirm_after_polls = None
        self.pool_error = ""
        self.fail_pending = False
        self.submit_response = httpx.Response(200, json={"txId": TXID})
        self.submit_error = None
        self.account = {
            "address": LEDGER_ADDRESS,
            "amount": 5_250_000,
            "assets": [
                {"asset-id": 1001, "amount": 1, "is-frozen": False},
                {"asset-id": 1002, "amount": 0, "is-frozen": False},
            ],
        }
        self.requests = []
        self.waited_rounds = []
        self.pending_polls = 0
        self.submitted = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))

        if path == "/v2/status":
            return httpx.Response(200, json={"last-round": self.last_round})
        if path.startswith("/v2/status/wait-for-block-after/"):
            waited = int(path.rsplit("/", 1)[1])
            self.waited_rounds.append(waited)
            self.last_round = waited
            return httpx.Response(200, json={"last-round": waited})
        if path.startswith("/v2/transactions/pending/"):
            if self.fail_pending:
                return httpx.Response(500, json={"message": "internal error"})
            self.pending_polls += 1
            if self.confirm_after_polls is not None and self.pending_polls > self.confirm_after_polls:
                return httpx.Response(
                    200, json={"confirmed-round": self.last_round, "asset-index": 31337, "pool-error": ""}
                )
            return httpx.Response(200, json={"confirmed-round": 0, "pool-error": self.pool_error})
        if path == "/v2/transactions/params":
            return httpx.Response(
                200,
                json={
                    "fee": 0,
                    "min-fee": 1000,
                    "last-round": self.last_round,
                    "genesis-id": "testnet-v1.0",
                    "genesis-hash": GENESIS_HASH,
                    "consensus-version": "future",
                },
            )
        if path == "/v2/transactions" and request.method == "POST":
            self.submitted.append((request.headers.get("content-type"), request.content))
            if self.submit_error is not None:
                raise self.submit_error
            return self.submit_response
        if path.startswith("/v2/accounts/"):
            return httpx.Response(200, json=self.account)
        return httpx.Response(404, json={"message": "not found"})

    @property
    def pending_queries(self) -> int:
        return sum(1 for _, path in self.requests if path.startswith("/v2/transactions/pending/"))


class MockCommon:
    def setup_method(self):
        self.network = NetworkRegistry().resolve("algorand-testnet")
        self.algod = MockAlgod()
        self.connector = MockLedgerConnector()
        self.adapter = LedgerAssetAdapter(
            self.network,
            connector=self.connector,
            transport=httpx.MockTransport(self.algod.handler),
        )

    def mint_params(self, **overrides):
        params = {
            "sender": LEDGER_ADDRESS,
            "name": "Quantum Cat",
            "description": "A cat in superposition",
            "token_uri": "ipfs://QmTokenUri",
            "quantum_hash": "qh_abc123",
        }
        params.update(overrides)
        return params


@pytest.mark.unit
class TestLedgerConnection(MockCommon):
    def test_address_validation(self):
        assert is_valid_address(LEDGER_ADDRESS)
        assert not is_valid_address(EVM_ADDRESS)
        assert not is_valid_address(LEDGER_ADDRESS[:-1] + "1")

    @pytest.mark.asyncio
    async def test_connect(self):
        assert await self.adapter.connect() == LEDGER_ADDRESS

    @pytest.mark.asyncio
    async def test_connect_declined(self):
        self.connector.errors["connect"] = ProviderRpcError(4001, "Modal closed by user")

        with pytest.raises(WalletConnectionError, match="declined"):
            await self.adapter.connect()

    @pytest.mark.asyncio
    async def test_connect_invalid_address(self):
        self.connector.accounts = ["not-an-address"]

        with pytest.raises(WalletConnectionError):
            await self.adapter.connect()

    @pytest.mark.asyncio
    async def test_connect_without_connector(self):
        adapter = LedgerAssetAdapter(self.network, connector=None)

        with pytest.raises(WalletConnectionError):
            await adapter.connect()

    @pytest.mark.asyncio
    async def test_reconnect(self):
        assert await self.adapter.reconnect(LEDGER_ADDRESS) is None

        self.connector.remembered = [LEDGER_ADDRESS_2, LEDGER_ADDRESS]
        assert await self.adapter.reconnect(LEDGER_ADDRESS) == LEDGER_ADDRESS

    def test_remote_disconnect_reports_no_accounts(self):
        seen = []
        unsubscribe = self.adapter.subscribe(seen.append, lambda chain: None)

        self.connector.drop()
        unsubscribe()
        self.connector.drop()

        assert seen == [[]]


@pytest.mark.unit
class TestLedgerReads(MockCommon):
    @pytest.mark.asyncio
    async def test_query_balance(self):
        assert await self.adapter.query_balance(LEDGER_ADDRESS) == Decimal("5.25")
        assert self.algod.requests == [("GET", f"/v2/accounts/{LEDGER_ADDRESS}")]

    @pytest.mark.asyncio
    async def test_query_balance_failure(self):
        def broken(request):
            raise httpx.ConnectError("connection refused")

        adapter = LedgerAssetAdapter(self.network, connector=self.connector, transport=httpx.MockTransport(broken))

        with pytest.raises(QueryError):
            await adapter.query_balance(LEDGER_ADDRESS)

    @pytest.mark.asyncio
    async def test_list_assets_skips_empty_holdings(self):
        assets = await self.adapter.list_assets(LEDGER_ADDRESS)

        assert [(a.asset_id, a.amount) for a in assets] == [("1001", 1)]

    @pytest.mark.asyncio
    async def test_no_verification_capability(self):
        assert not self.adapter.supports_verification
        with pytest.raises(NotImplementedError):
            await self.adapter.verify_quantum_hash("1001", "qh")


@pytest.mark.unit
class TestLedgerBuild(MockCommon):
    def test_build_asset_create(self):
        pending = self.adapter.build_transaction(TransactionKind.MINT, self.mint_params())

        assert pending.tag == "LedgerAssetCreate"
        assert pending.asset_name == "Quantum Cat"
        assert pending.unit_name == "QNFT"
        assert pending.asset_url == "ipfs://QmTokenUri"
        assert pending.total == 1
        assert pending.decimals == 0
        assert pending.metadata_hash == hashlib.sha256(b"qh_abc123").digest()
        assert json.loads(pending.note) == {"name": "Quantum Cat", "quantum_hash": "qh_abc123"}

    def test_build_truncates_long_asset_name(self):
        name = "Quantum Entangled Cat Collection #42"
        pending = self.adapter.build_transaction(TransactionKind.MINT, self.mint_params(name=name))

        assert pending.asset_name == name[:32]
        assert json.loads(pending.note)["name"] == name

    def test_build_rejects_long_unit_name(self):
        with pytest.raises(ValidationError, match="Unit name"):
            self.adapter.build_transaction(TransactionKind.MINT, self.mint_params(unit_name="QUANTUMNFT"))

    def test_build_rejects_long_url(self):
        with pytest.raises(ValidationError, match="URL"):
            self.adapter.build_transaction(TransactionKind.MINT, self.mint_params(token_uri="ipfs://" + "a" * 100))

    def test_build_rejects_invalid_sender(self):
        with pytest.raises(ValidationError):
            self.adapter.build_transaction(TransactionKind.MINT, self.mint_params(sender=EVM_ADDRESS))

    def test_build_payment(self):
        pending = self.adapter.build_transaction(
            TransactionKind.PAYMENT, {"sender": LEDGER_ADDRESS, "recipient": LEDGER_ADDRESS_2, "value": 100_000}
        )

        assert pending.tag == "LedgerPayment"
        assert pending.amount_micro == 100_000


@pytest.mark.unit
class TestLedgerSignSubmit(MockCommon):
    @pytest.mark.asyncio
    async def test_sign_hands_group_to_wallet(self):
        pending = self.adapter.build_transaction(TransactionKind.MINT, self.mint_params())

        signed = await self.adapter.sign_transaction(pending)

        assert signed.payload == b"".join(self.connector.signed_blobs)
        [[entry]] = self.connector.groups[0]
        txn = entry["txn"]
        assert entry["signers"] == [LEDGER_ADDRESS]
        assert txn["type"] == "acfg"
        assert txn["snd"] == LEDGER_ADDRESS
        assert txn["fee"] == 1000
        assert txn["fv"] == 1000
        assert txn["lv"] == 2000
        assert txn["gh"] == GENESIS_HASH
        assert txn["apar"]["an"] == "Quantum Cat"
        assert txn["apar"]["au"] == "ipfs://QmTokenUri"
        assert base64.b64decode(txn["apar"]["am"]) == hashlib.sha256(b"qh_abc123").digest()
        assert txn["apar"]["m"] == LEDGER_ADDRESS

    @pytest.mark.asyncio
    async def test_sign_rejected(self):
        self.connector.errors["sign"] = ProviderRpcError(4001, "Transaction request rejected")
        pending = self.adapter.build_transaction(TransactionKind.MINT, self.mint_params())

        with pytest.raises(TransactionRejected):
            await self.adapter.sign_transaction(pending)

    @pytest.mark.asyncio
    async def test_sign_rejects_evm_variant(self):
        pending = EVMCall(sender=EVM_ADDRESS, to=EVM_ADDRESS, data="0x", value_wei=0, chain_id=1)

        with pytest.raises(ValidationError):
            await self.adapter.sign_transaction(pending)

    @pytest.mark.asyncio
    async def test_submit(self):
        signed = SignedTransaction(payload=b"signed-bytes", tag="LedgerAssetCreate", sender=LEDGER_ADDRESS)

        assert await self.adapter.submit_transaction(signed) == TXID
        assert self.algod.submitted == [("application/x-binary", b"signed-bytes")]
        assert signed.consumed

    @pytest.mark.asyncio
    async def test_submit_rejected_carries_node_reason(self):
        self.algod.submit_response = httpx.Response(
            400, json={"message": "TransactionPool.Remember: transaction ZTGB: overspend"}
        )
        signed = SignedTransaction(payload=b"signed-bytes", tag="LedgerPayment", sender=LEDGER_ADDRESS)

        with pytest.raises(SubmissionError) as exc_info:
            await self.adapter.submit_transaction(signed)

        assert "overspend" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_submit_interrupted_may_have_happened(self):
        self.algod.submit_error = httpx.ReadTimeout("read timed out")
        signed = SignedTransaction(payload=b"signed-bytes", tag="LedgerAssetCreate", sender=LEDGER_ADDRESS)

        with pytest.raises(TransactionStatusUnknown) as exc_info:
            await self.adapter.submit_transaction(signed)

        assert exc_info.value.outcome == Outcome.MAY_HAVE_HAPPENED

    @pytest.mark.asyncio
    async def test_submit_node_unreachable(self):
        self.algod.submit_error = httpx.ConnectError("connection refused")
        signed = SignedTransaction(payload=b"signed-bytes", tag="LedgerAssetCreate", sender=LEDGER_ADDRESS)

        with pytest.raises(SubmissionError, match="unreachable"):
            await self.adapter.submit_transaction(signed)


@pytest.mark.unit
class TestLedgerConfirmation(MockCommon):
    @pytest.mark.asyncio
    async def test_confirmed_on_first_poll(self):
        self.algod.confirm_after_polls = 0

        result = await self.adapter.confirm_transaction(TXID, 10)

        assert result.confirmed_at == 1000
        assert self.algod.pending_queries == 1
        assert self.algod.waited_rounds == []

    @pytest.mark.asyncio
    async def test_confirmed_after_rounds(self):
        self.algod.confirm_after_polls = 3

        result = await self.adapter.confirm_transaction(TXID, 10)

        assert result.transaction_id == TXID
        assert result.confirmed_at == 1003
        assert result.raw["asset-index"] == 31337
        assert self.algod.pending_queries == 4
        assert self.algod.waited_rounds == [1001, 1002, 1003]

    @pytest.mark.asyncio
    async def test_timeout_after_exact_budget(self):
        with pytest.raises(ConfirmationTimeout) as exc_info:
            await self.adapter.confirm_transaction(TXID, 10)

        assert exc_info.value.transaction_id == TXID
        assert self.algod.pending_queries == 11
        assert self.algod.waited_rounds == list(range(1001, 1011))

    @pytest.mark.asyncio
    async def test_pool_error_is_submission_error(self):
        self.algod.pool_error = "transaction already in ledger"

        with pytest.raises(SubmissionError) as exc_info:
            await self.adapter.confirm_transaction(TXID, 10)

        assert exc_info.value.reason == "transaction already in ledger"
        assert self.algod.pending_queries == 1

    @pytest.mark.asyncio
    async def test_node_failure_while_polling_keeps_transaction_id(self):
        self.algod.fail_pending = True

        with pytest.raises(TransactionStatusUnknown) as exc_info:
            await self.adapter.confirm_transaction(TXID, 10)

        assert exc_info.value.transaction_id == TXID
        assert exc_info.value.outcome == Outcome.MAY_HAVE_HAPPENED
        assert "internal error" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_resolve_asset_id(self):
        result = ConfirmationResult(TXID, 1003, {"confirmed-round": 1003, "asset-index": 31337})

        assert await self.adapter.resolve_asset_id(result) == "31337"

    @pytest.mark.asyncio
    async def test_resolve_asset_id_missing(self):
        with pytest.raises(QueryError):
            await self.adapter.resolve_asset_id(ConfirmationResult(TXID, 1003, {"confirmed-round": 1003}))
