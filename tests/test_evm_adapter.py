"""
Test cases for the EVM chain adapter against a mock wallet and mock RPC
"""

from decimal import Decimal

import eth_abi
import pytest
from eth_utils import function_signature_to_4byte_selector, keccak
from web3.exceptions import TimeExhausted

from qchain_offchain.adapters.evm import NFT_MINTED_TOPIC, TRANSFER_TOPIC, EVMAdapter, encode_call
from qchain_offchain.enums import Outcome, TransactionKind
from qchain_offchain.errors import (
    ConfirmationTimeout,
    NetworkMismatchError,
    QueryError,
    SubmissionError,
    TransactionRejected,
    TransactionStatusUnknown,
    ValidationError,
    WalletConnectionError,
)
from qchain_offchain.models import ConfirmationResult, LedgerPayment
from qchain_offchain.networks import NetworkRegistry
from qchain_offchain.providers import (
    ETH_SIGN_TRANSACTION,
    WALLET_ADD_CHAIN,
    WALLET_SWITCH_CHAIN,
    ProviderRpcError,
)

from tests.mocks import (
    CONTRACT_ADDRESS,
    EVM_ADDRESS,
    EVM_ADDRESS_2,
    LEDGER_ADDRESS,
    TX_HASH,
    MockEthereumProvider,
    mock_web3,
)


def word(value: int) -> bytes:
    return value.to_bytes(32, "big")


class MockCommon:
    """Adapter on the local network, which has the QuantumNFT contract configured"""

    def setup_method(self):
        registry = NetworkRegistry()
        self.network = registry.resolve("31337")
        self.sepolia = registry.resolve("11155111")
        self.provider = MockEthereumProvider(chain_id=31337)
        self.web3 = mock_web3()
        self.adapter = EVMAdapter(
            self.network,
            provider=self.provider,
            web3=self.web3,
            receipt_timeout=5,
            default_mint_price_wei=10**15,
        )

    def mint_params(self, **overrides):
        params = {
            "sender": EVM_ADDRESS.lower(),
            "name": "Quantum Cat",
            "description": "A cat in superposition",
            "token_uri": "ipfs://QmTokenUri",
            "quantum_hash": "qh_abc123",
            "value": 10**15,
        }
        params.update(overrides)
        return params


@pytest.mark.unit
class TestEVMConnection(MockCommon):
    @pytest.mark.asyncio
    async def test_connect_returns_checksum_address(self):
        self.provider.accounts = [EVM_ADDRESS.lower()]

        address = await self.adapter.connect()

        assert address == EVM_ADDRESS
        assert self.provider.methods() == ["eth_requestAccounts"]

    @pytest.mark.asyncio
    async def test_connect_declined(self):
        self.provider.errors["eth_requestAccounts"] = ProviderRpcError(4001, "User rejected the request.")

        with pytest.raises(WalletConnectionError, match="declined"):
            await self.adapter.connect()

    @pytest.mark.asyncio
    async def test_connect_without_provider(self):
        adapter = EVMAdapter(self.network, provider=None, web3=self.web3)

        with pytest.raises(WalletConnectionError):
            await adapter.connect()

    @pytest.mark.asyncio
    async def test_connect_no_accounts(self):
        self.provider.accounts = []

        with pytest.raises(WalletConnectionError):
            await self.adapter.connect()

    @pytest.mark.asyncio
    async def test_reconnect_prefers_stored_address(self):
        self.provider.accounts = [EVM_ADDRESS_2, EVM_ADDRESS.lower()]

        assert await self.adapter.reconnect(EVM_ADDRESS) == EVM_ADDRESS
        assert self.provider.methods() == ["eth_accounts"]

    @pytest.mark.asyncio
    async def test_reconnect_forgotten(self):
        self.provider.accounts = []

        assert await self.adapter.reconnect(EVM_ADDRESS) is None

    @pytest.mark.asyncio
    async def test_disconnect_tolerates_unsupported_revoke(self):
        self.provider.errors["wallet_revokePermissions"] = ProviderRpcError(4200, "Unsupported")

        await self.adapter.disconnect()

    def test_subscribe_and_unsubscribe(self):
        seen = []
        unsubscribe = self.adapter.subscribe(lambda accounts: seen.append(accounts), lambda chain: seen.append(chain))

        self.provider.emit("accountsChanged", [EVM_ADDRESS_2])
        self.provider.emit("chainChanged", "0x1")
        unsubscribe()
        self.provider.emit("accountsChanged", [])

        assert seen == [[EVM_ADDRESS_2], "0x1"]

    @pytest.mark.asyncio
    async def test_activate_known_network(self):
        self.provider.known_chains.add(11155111)
        adapter = EVMAdapter(self.sepolia, provider=self.provider, web3=self.web3)

        await adapter.activate_network()

        assert self.provider.chain_id == 11155111
        assert self.provider.methods() == [WALLET_SWITCH_CHAIN]

    @pytest.mark.asyncio
    async def test_activate_adds_unknown_network(self):
        adapter = EVMAdapter(self.sepolia, provider=self.provider, web3=self.web3)

        await adapter.activate_network()

        assert self.provider.methods() == [WALLET_SWITCH_CHAIN, WALLET_ADD_CHAIN]
        added = self.provider.requests[1][1][0]
        assert added["chainId"] == hex(11155111)
        assert added["rpcUrls"] == [self.sepolia.endpoint_url]
        assert added["nativeCurrency"]["decimals"] == 18

    @pytest.mark.asyncio
    async def test_activate_declined(self):
        self.provider.errors[WALLET_SWITCH_CHAIN] = ProviderRpcError(4001, "User rejected the request.")
        adapter = EVMAdapter(self.sepolia, provider=self.provider, web3=self.web3)

        with pytest.raises(NetworkMismatchError):
            await adapter.activate_network()


@pytest.mark.unit
class TestEVMReads(MockCommon):
    @pytest.mark.asyncio
    async def test_query_balance(self):
        balance = await self.adapter.query_balance(EVM_ADDRESS)

        assert balance == Decimal("1.5")
        self.web3.eth.get_balance.assert_awaited_once_with(EVM_ADDRESS)

    @pytest.mark.asyncio
    async def test_query_balance_failure(self):
        self.web3.eth.get_balance.side_effect = ConnectionError("RPC unreachable")

        with pytest.raises(QueryError):
            await self.adapter.query_balance(EVM_ADDRESS)

    @pytest.mark.asyncio
    async def test_mint_fee_from_contract(self):
        self.web3.eth.call.return_value = eth_abi.encode(["uint256"], [2 * 10**15])

        assert await self.adapter.mint_fee() == 2 * 10**15
        call = self.web3.eth.call.await_args.args[0]
        assert call["data"] == encode_call("mintPrice()")

    @pytest.mark.asyncio
    async def test_mint_fee_falls_back_to_default(self):
        self.web3.eth.call.side_effect = ValueError("execution reverted")

        assert await self.adapter.mint_fee() == 10**15

    @pytest.mark.asyncio
    async def test_verify_quantum_hash(self):
        self.web3.eth.call.return_value = eth_abi.encode(["bool"], [True])

        assert await self.adapter.verify_quantum_hash("5", "qh_abc123") is True
        data = self.web3.eth.call.await_args.args[0]["data"]
        assert data == encode_call("verifyQuantumHash(uint256,string)", ["uint256", "string"], [5, "qh_abc123"])

    @pytest.mark.asyncio
    async def test_verify_rejects_non_numeric_token(self):
        with pytest.raises(ValidationError):
            await self.adapter.verify_quantum_hash("abc", "qh_abc123")

    @pytest.mark.asyncio
    async def test_list_assets(self):
        self.web3.eth.call.side_effect = [
            eth_abi.encode(["uint256"], [1]),
            eth_abi.encode(["uint256"], [9]),
            eth_abi.encode(["string"], ["ipfs://QmNine"]),
        ]

        assets = await self.adapter.list_assets(EVM_ADDRESS)

        assert [(a.asset_id, a.amount, a.uri) for a in assets] == [("9", 1, "ipfs://QmNine")]

    @pytest.mark.asyncio
    async def test_list_assets_without_contract(self):
        adapter = EVMAdapter(self.sepolia, provider=self.provider, web3=self.web3)

        assert await adapter.list_assets(EVM_ADDRESS) == []


@pytest.mark.unit
class TestEVMBuild(MockCommon):
    def test_build_mint_encodes_call(self):
        pending = self.adapter.build_transaction(TransactionKind.MINT, self.mint_params())

        assert pending.sender == EVM_ADDRESS
        assert pending.to == CONTRACT_ADDRESS
        assert pending.value_wei == 10**15
        assert pending.chain_id == 31337
        selector = function_signature_to_4byte_selector("mintNFT(string,string,string,string)")
        raw = bytes.fromhex(pending.data[2:])
        assert raw[:4] == selector
        assert eth_abi.decode(["string"] * 4, raw[4:]) == (
            "Quantum Cat",
            "A cat in superposition",
            "ipfs://QmTokenUri",
            "qh_abc123",
        )

    def test_build_mint_requires_quantum_hash(self):
        with pytest.raises(ValidationError, match="quantum_hash"):
            self.adapter.build_transaction(TransactionKind.MINT, self.mint_params(quantum_hash=""))

    def test_build_mint_requires_contract(self):
        adapter = EVMAdapter(self.sepolia, provider=self.provider, web3=self.web3)

        with pytest.raises(ValidationError, match="contract"):
            adapter.build_transaction(TransactionKind.MINT, self.mint_params())

    def test_build_rejects_invalid_sender(self):
        with pytest.raises(ValidationError):
            self.adapter.build_transaction(TransactionKind.MINT, self.mint_params(sender="0x123"))

    def test_build_payment(self):
        pending = self.adapter.build_transaction(
            TransactionKind.PAYMENT, {"sender": EVM_ADDRESS, "recipient": EVM_ADDRESS_2, "value": 5}
        )

        assert pending.to == EVM_ADDRESS_2
        assert pending.data == "0x"
        assert pending.kind == TransactionKind.PAYMENT

    @pytest.mark.asyncio
    async def test_sign_rejects_foreign_variant(self):
        pending = LedgerPayment(sender=LEDGER_ADDRESS, receiver=LEDGER_ADDRESS, amount_micro=1)

        with pytest.raises(ValidationError):
            await self.adapter.sign_transaction(pending)


@pytest.mark.unit
class TestEVMSignSubmit(MockCommon):
    def setup_method(self):
        super().setup_method()
        self.pending = self.adapter.build_transaction(TransactionKind.MINT, self.mint_params())

    @pytest.mark.asyncio
    async def test_sign_buffers_gas_and_checks_chain(self):
        signed = await self.adapter.sign_transaction(self.pending)

        assert signed.payload == bytes.fromhex("02f87083aa36a7")
        assert signed.tag == "EVMCall"
        method, params = self.provider.requests[-1]
        assert method == ETH_SIGN_TRANSACTION
        assert params[0]["gas"] == hex(150_000)
        assert params[0]["value"] == hex(10**15)
        assert params[0]["chainId"] == hex(31337)

    @pytest.mark.asyncio
    async def test_sign_on_wrong_chain(self):
        self.provider.chain_id = 1

        with pytest.raises(NetworkMismatchError) as exc_info:
            await self.adapter.sign_transaction(self.pending)

        assert exc_info.value.expected == 31337
        assert exc_info.value.actual == 1
        assert ETH_SIGN_TRANSACTION not in self.provider.methods()

    @pytest.mark.asyncio
    async def test_sign_rejected_by_user(self):
        self.provider.errors[ETH_SIGN_TRANSACTION] = ProviderRpcError(4001, "User denied transaction signature.")

        with pytest.raises(TransactionRejected):
            await self.adapter.sign_transaction(self.pending)

    @pytest.mark.asyncio
    async def test_sign_session_died(self):
        self.provider.errors[ETH_SIGN_TRANSACTION] = ProviderRpcError(4900, "Disconnected")

        with pytest.raises(WalletConnectionError):
            await self.adapter.sign_transaction(self.pending)

    @pytest.mark.asyncio
    async def test_gas_estimation_failure(self):
        self.web3.eth.estimate_gas.side_effect = ValueError({"code": -32000, "message": "execution reverted: Insufficient payment"})

        with pytest.raises(SubmissionError) as exc_info:
            await self.adapter.sign_transaction(self.pending)

        assert exc_info.value.reason == "execution reverted: Insufficient payment"
        assert ETH_SIGN_TRANSACTION not in self.provider.methods()

    @pytest.mark.asyncio
    async def test_gas_estimation_rpc_unreachable(self):
        self.web3.eth.estimate_gas.side_effect = OSError("connection reset")

        with pytest.raises(QueryError) as exc_info:
            await self.adapter.sign_transaction(self.pending)

        assert exc_info.value.outcome == Outcome.RETRYABLE
        assert ETH_SIGN_TRANSACTION not in self.provider.methods()

    @pytest.mark.asyncio
    async def test_submit_interrupted_carries_payload_hash(self):
        self.web3.eth.send_raw_transaction.side_effect = ConnectionError("rpc down")
        signed = await self.adapter.sign_transaction(self.pending)

        with pytest.raises(TransactionStatusUnknown) as exc_info:
            await self.adapter.submit_transaction(signed)

        assert exc_info.value.transaction_id == "0x" + keccak(signed.payload).hex()
        assert exc_info.value.outcome == Outcome.MAY_HAVE_HAPPENED

    @pytest.mark.asyncio
    async def test_submit_returns_hash_and_consumes(self):
        signed = await self.adapter.sign_transaction(self.pending)

        assert await self.adapter.submit_transaction(signed) == TX_HASH
        self.web3.eth.send_raw_transaction.assert_awaited_once_with(signed.payload)
        with pytest.raises(RuntimeError):
            await self.adapter.submit_transaction(signed)

    @pytest.mark.asyncio
    async def test_submit_node_rejection_carries_reason(self):
        self.web3.eth.send_raw_transaction.side_effect = ValueError(
            {"code": -32000, "message": "insufficient funds for gas * price + value"}
        )
        signed = await self.adapter.sign_transaction(self.pending)

        with pytest.raises(SubmissionError) as exc_info:
            await self.adapter.submit_transaction(signed)

        assert exc_info.value.reason == "insufficient funds for gas * price + value"
        assert "insufficient funds" in exc_info.value.user_message


@pytest.mark.unit
class TestEVMConfirm(MockCommon):
    @pytest.mark.asyncio
    async def test_confirm_success(self):
        self.web3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 120, "logs": []}

        result = await self.adapter.confirm_transaction(TX_HASH, 10)

        assert result.transaction_id == TX_HASH
        assert result.confirmed_at == 120
        self.web3.eth.wait_for_transaction_receipt.assert_awaited_once_with(TX_HASH, timeout=5)

    @pytest.mark.asyncio
    async def test_confirm_timeout(self):
        self.web3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")

        with pytest.raises(ConfirmationTimeout) as exc_info:
            await self.adapter.confirm_transaction(TX_HASH, 10)

        assert exc_info.value.transaction_id == TX_HASH

    @pytest.mark.asyncio
    async def test_confirm_rpc_failure_keeps_transaction_id(self):
        self.web3.eth.wait_for_transaction_receipt.side_effect = ConnectionError("rpc down")

        with pytest.raises(TransactionStatusUnknown) as exc_info:
            await self.adapter.confirm_transaction(TX_HASH, 10)

        assert exc_info.value.transaction_id == TX_HASH
        assert exc_info.value.outcome == Outcome.MAY_HAVE_HAPPENED
        assert not isinstance(exc_info.value, ConfirmationTimeout)

    @pytest.mark.asyncio
    async def test_confirm_reverted(self):
        self.web3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "blockNumber": 121, "logs": []}

        with pytest.raises(SubmissionError, match="reverted"):
            await self.adapter.confirm_transaction(TX_HASH, 10)

    @pytest.mark.asyncio
    async def test_resolve_asset_id_from_mint_event(self):
        receipt = {
            "logs": [
                {"address": CONTRACT_ADDRESS, "topics": [TRANSFER_TOPIC, word(0), word(1), word(5)]},
                {"address": CONTRACT_ADDRESS, "topics": [NFT_MINTED_TOPIC, word(5), word(1)]},
            ]
        }

        asset_id = await self.adapter.resolve_asset_id(ConfirmationResult(TX_HASH, 120, receipt))

        assert asset_id == "5"

    @pytest.mark.asyncio
    async def test_resolve_asset_id_from_transfer(self):
        receipt = {
            "logs": [
                {"address": "0x" + "11" * 20, "topics": [NFT_MINTED_TOPIC, word(99)]},
                {"address": CONTRACT_ADDRESS.lower(), "topics": ["0x" + TRANSFER_TOPIC.hex(), word(0), word(1), word(8)]},
            ]
        }

        asset_id = await self.adapter.resolve_asset_id(ConfirmationResult(TX_HASH, 120, receipt))

        assert asset_id == "8"

    @pytest.mark.asyncio
    async def test_resolve_asset_id_falls_back_to_total_minted(self):
        self.web3.eth.call.return_value = eth_abi.encode(["uint256"], [12])

        asset_id = await self.adapter.resolve_asset_id(ConfirmationResult(TX_HASH, 120, {"logs": []}))

        assert asset_id == "11"
