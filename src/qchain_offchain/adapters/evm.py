"""
EVM Chain Adapter

Wallet operations go through an EIP-1193 provider (account requests, chain id,
transaction signing, chain switching). Reads, raw submission and receipts go
through AsyncWeb3 against the network RPC endpoint. Mint calls target the
QuantumNFT contract:

    mintNFT(string name, string description, string tokenURI, string quantumHash) payable
    verifyQuantumHash(uint256 tokenId, string quantumHash) view returns (bool)
"""

import logging
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Sequence

import eth_abi
from eth_utils import function_signature_to_4byte_selector, keccak
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted, Web3Exception

from ..enums import ChainFamily, TransactionKind
from ..errors import (
    ConfirmationTimeout,
    NetworkMismatchError,
    QueryError,
    SubmissionError,
    TransactionRejected,
    TransactionStatusUnknown,
    ValidationError,
    WalletConnectionError,
)
from ..models import ConfirmationResult, EVMCall, NetworkConfig, OwnedAsset, PendingTransaction, SignedTransaction
from ..providers import (
    ACCOUNTS_CHANGED,
    CHAIN_CHANGED,
    ETH_ACCOUNTS,
    ETH_CHAIN_ID,
    ETH_REQUEST_ACCOUNTS,
    ETH_SIGN_TRANSACTION,
    SESSION_DEAD_CODES,
    UNRECOGNIZED_CHAIN,
    WALLET_ADD_CHAIN,
    WALLET_REVOKE_PERMISSIONS,
    WALLET_SWITCH_CHAIN,
    EthereumProvider,
    ProviderRpcError,
)
from .base import AccountsListener, ChainAdapter, ChainListener, Unsubscribe, require


logger = logging.getLogger(__name__)

WEI_PER_ETHER = Decimal(10**18)

MINT_NFT = "mintNFT(string,string,string,string)"
VERIFY_QUANTUM_HASH = "verifyQuantumHash(uint256,string)"
MINT_PRICE = "mintPrice()"
TOTAL_MINTED = "totalMinted()"
BALANCE_OF = "balanceOf(address)"
TOKEN_OF_OWNER_BY_INDEX = "tokenOfOwnerByIndex(address,uint256)"
TOKEN_URI = "tokenURI(uint256)"

NFT_MINTED_TOPIC = keccak(text="NFTMinted(uint256,address,string,string,string)")
TRANSFER_TOPIC = keccak(text="Transfer(address,address,uint256)")


def encode_call(signature: str, arg_types: Sequence[str] = (), args: Sequence[Any] = ()) -> str:
    """ABI-encode a contract call as 0x-prefixed calldata"""
    selector = function_signature_to_4byte_selector(signature)
    return "0x" + (selector + eth_abi.encode(list(arg_types), list(args))).hex()


class EVMAdapter(ChainAdapter):
    """Adapter for account/contract-based EVM networks"""

    chain_family = ChainFamily.EVM
    supports_verification = True

    def __init__(
        self,
        network: NetworkConfig,
        provider: Optional[EthereumProvider],
        web3: Optional[AsyncWeb3] = None,
        receipt_timeout: float = 120.0,
        gas_buffer_percent: int = 150,
        default_mint_price_wei: int = 0,
        request_timeout: float = 30.0,
    ):
        """
        Initialize the adapter

        Args:
            network: EVM network configuration
            provider: Wallet provider, None when no extension is available
            web3: RPC client; built from the network endpoint when omitted
            receipt_timeout: Seconds to wait for a receipt before giving up
            gas_buffer_percent: Gas limit as a percentage of the estimate
            default_mint_price_wei: Mint price used when the contract cannot be read
            request_timeout: HTTP timeout for RPC requests
        """
        super().__init__(network)
        self._provider = provider
        self._web3 = web3 or AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(network.endpoint_url, request_kwargs={"timeout": request_timeout})
        )
        self._receipt_timeout = receipt_timeout
        self._gas_buffer_percent = gas_buffer_percent
        self._default_mint_price_wei = default_mint_price_wei

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> str:
        provider = self._require_provider()
        try:
            accounts = await provider.request(ETH_REQUEST_ACCOUNTS)
        except ProviderRpcError as e:
            if e.user_rejected:
                raise WalletConnectionError("User declined the wallet connection request") from e
            raise WalletConnectionError(f"Wallet connection failed: {e.message}") from e

        if not accounts:
            raise WalletConnectionError("Wallet returned no accounts")
        return Web3.to_checksum_address(accounts[0])

    async def reconnect(self, stored_address: str) -> Optional[str]:
        if self._provider is None:
            return None
        try:
            accounts = await self._provider.request(ETH_ACCOUNTS)
        except ProviderRpcError as e:
            logger.warning(f"Silent reconnect failed on {self.network.display_name}: {e.message}")
            return None

        if not accounts:
            return None
        if stored_address.lower() in (account.lower() for account in accounts):
            return Web3.to_checksum_address(stored_address)
        return Web3.to_checksum_address(accounts[0])

    async def disconnect(self) -> None:
        if self._provider is None:
            return
        try:
            await self._provider.request(WALLET_REVOKE_PERMISSIONS, [{"eth_accounts": {}}])
        except ProviderRpcError as e:
            logger.info(f"Wallet kept its permissions after disconnect: {e.message}")

    def subscribe(self, on_accounts_changed: AccountsListener, on_chain_changed: ChainListener) -> Unsubscribe:
        provider = self._provider
        if provider is None:
            return lambda: None

        def accounts_listener(accounts: Any) -> None:
            on_accounts_changed(list(accounts or []))

        provider.on(ACCOUNTS_CHANGED, accounts_listener)
        provider.on(CHAIN_CHANGED, on_chain_changed)

        def unsubscribe() -> None:
            provider.remove_listener(ACCOUNTS_CHANGED, accounts_listener)
            provider.remove_listener(CHAIN_CHANGED, on_chain_changed)

        return unsubscribe

    async def activate_network(self) -> None:
        provider = self._require_provider()
        chain_hex = hex(self.network.chain_id)
        try:
            await provider.request(WALLET_SWITCH_CHAIN, [{"chainId": chain_hex}])
            return
        except ProviderRpcError as e:
            if e.code != UNRECOGNIZED_CHAIN:
                raise NetworkMismatchError(
                    f"Could not switch wallet to {self.network.display_name}: {e.message}",
                    expected=self.network.chain_id,
                ) from e

        logger.info(f"Wallet does not know {self.network.display_name}, adding it")
        try:
            await provider.request(WALLET_ADD_CHAIN, [self._chain_parameters()])
        except ProviderRpcError as e:
            raise NetworkMismatchError(
                f"Could not add {self.network.display_name} to the wallet: {e.message}",
                expected=self.network.chain_id,
            ) from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query_balance(self, address: str) -> Decimal:
        try:
            wei = await self._web3.eth.get_balance(Web3.to_checksum_address(address))
        except Exception as e:
            raise QueryError(f"Failed to fetch balance for {address}: {e}") from e
        return Decimal(wei) / WEI_PER_ETHER

    async def list_assets(self, address: str) -> List[OwnedAsset]:
        if not self.network.nft_contract_address:
            return []

        owner = Web3.to_checksum_address(address)
        count = await self._call(BALANCE_OF, ["address"], [owner], "uint256")
        assets = []
        for index in range(count):
            try:
                token_id = await self._call(TOKEN_OF_OWNER_BY_INDEX, ["address", "uint256"], [owner, index], "uint256")
                uri = await self._call(TOKEN_URI, ["uint256"], [token_id], "string")
            except QueryError as e:
                logger.warning(f"Skipping token #{index} of {owner}: {e}")
                continue
            assets.append(OwnedAsset(asset_id=str(token_id), amount=1, uri=uri))
        return assets

    async def mint_fee(self) -> int:
        if not self.network.nft_contract_address:
            return self._default_mint_price_wei
        try:
            return await self._call(MINT_PRICE, [], [], "uint256")
        except QueryError as e:
            logger.warning(f"Could not read mint price, using default: {e}")
            return self._default_mint_price_wei

    async def verify_quantum_hash(self, asset_id: str, quantum_hash: str) -> bool:
        try:
            token_id = int(asset_id)
        except ValueError:
            raise ValidationError(f"Invalid token id: {asset_id}") from None
        self._contract_address()
        return bool(await self._call(VERIFY_QUANTUM_HASH, ["uint256", "string"], [token_id, quantum_hash], "bool"))

    # ------------------------------------------------------------------
    # Transaction lifecycle
    # ------------------------------------------------------------------

    def build_transaction(self, kind: TransactionKind, params: Mapping[str, Any]) -> PendingTransaction:
        sender = self._checksum(require(params, "sender"), "sender")
        value_wei = int(params.get("value", 0))
        if value_wei < 0:
            raise ValidationError("Transaction value must be non-negative")

        if kind == TransactionKind.MINT:
            data = encode_call(
                MINT_NFT,
                ["string", "string", "string", "string"],
                [
                    require(params, "name"),
                    require(params, "description"),
                    require(params, "token_uri"),
                    require(params, "quantum_hash"),
                ],
            )
            return EVMCall(
                sender=sender,
                to=self._contract_address(),
                data=data,
                value_wei=value_wei,
                chain_id=self.network.chain_id,
                kind=TransactionKind.MINT,
            )

        if kind == TransactionKind.PAYMENT:
            recipient = self._checksum(require(params, "recipient"), "recipient")
            if value_wei <= 0:
                raise ValidationError("Payment value must be positive")
            return EVMCall(
                sender=sender,
                to=recipient,
                data="0x",
                value_wei=value_wei,
                chain_id=self.network.chain_id,
                kind=TransactionKind.PAYMENT,
            )

        raise ValidationError(f"Unsupported transaction kind: {kind}")

    async def sign_transaction(self, pending: PendingTransaction) -> SignedTransaction:
        self._check_variant(pending)
        provider = self._require_provider()
        await self._ensure_chain(provider)
        gas = await self._estimate_gas(pending)

        tx = {
            "from": pending.sender,
            "to": pending.to,
            "data": pending.data,
            "value": hex(pending.value_wei),
            "gas": hex(gas),
            "chainId": hex(pending.chain_id),
        }
        try:
            raw = await provider.request(ETH_SIGN_TRANSACTION, [tx])
        except ProviderRpcError as e:
            if e.user_rejected:
                raise TransactionRejected() from e
            if e.code in SESSION_DEAD_CODES:
                raise WalletConnectionError(f"Wallet session ended: {e.message}") from e
            raise TransactionRejected(f"Wallet could not sign the transaction: {e.message}") from e

        return SignedTransaction(payload=_as_bytes(raw), tag=pending.tag, sender=pending.sender)

    async def submit_transaction(self, signed: SignedTransaction) -> str:
        if signed.tag != EVMCall.tag:
            raise ValidationError(f"{signed.tag} cannot be submitted to {self.network.display_name}")
        payload = signed.consume()
        # The hash of the signed payload is the transaction id
        expected_id = Web3.to_hex(keccak(payload))
        try:
            tx_hash = await self._web3.eth.send_raw_transaction(payload)
        except (Web3Exception, ValueError) as e:
            raise SubmissionError(reason=_node_reason(e)) from e
        except Exception as e:
            logger.warning(f"Submission of {expected_id} to {self.network.display_name} was interrupted: {e}")
            raise TransactionStatusUnknown(
                f"Submission of {expected_id} was interrupted: {e}", transaction_id=expected_id
            ) from e

        transaction_id = Web3.to_hex(tx_hash)
        logger.info(f"Submitted {transaction_id} to {self.network.display_name}")
        return transaction_id

    async def confirm_transaction(self, transaction_id: str, budget: int) -> ConfirmationResult:
        # The receipt wait blocks until mined or the provider times out; budget does not apply.
        try:
            receipt = await self._web3.eth.wait_for_transaction_receipt(
                transaction_id, timeout=self._receipt_timeout
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(transaction_id=transaction_id) from e
        except Exception as e:
            logger.warning(f"Lost track of {transaction_id} while waiting for its receipt: {e}")
            raise TransactionStatusUnknown(
                f"Transaction {transaction_id} was submitted but its receipt could not be read: {e}",
                transaction_id=transaction_id,
            ) from e

        receipt = dict(receipt)
        if receipt.get("status") == 0:
            raise SubmissionError(f"Transaction {transaction_id} reverted on-chain", reason="execution reverted")

        logger.info(f"Transaction {transaction_id} mined in block {receipt['blockNumber']}")
        return ConfirmationResult(
            transaction_id=transaction_id,
            confirmed_at=int(receipt["blockNumber"]),
            raw=receipt,
        )

    async def resolve_asset_id(self, confirmation: ConfirmationResult) -> str:
        contract = (self.network.nft_contract_address or "").lower()
        for log in confirmation.raw.get("logs", []):
            topics = [_as_bytes(topic) for topic in log.get("topics", [])]
            address = str(log.get("address", "")).lower()
            if not topics or (contract and address and address != contract):
                continue
            if topics[0] == NFT_MINTED_TOPIC and len(topics) > 1:
                return str(int.from_bytes(topics[1], "big"))
            if topics[0] == TRANSFER_TOPIC and len(topics) > 3 and int.from_bytes(topics[1], "big") == 0:
                return str(int.from_bytes(topics[3], "big"))

        total = await self._call(TOTAL_MINTED, [], [], "uint256")
        if total < 1:
            raise QueryError(f"Could not determine the token minted by {confirmation.transaction_id}")
        return str(total - 1)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_provider(self) -> EthereumProvider:
        if self._provider is None:
            raise WalletConnectionError("No Ethereum wallet provider available")
        return self._provider

    def _contract_address(self) -> str:
        if not self.network.nft_contract_address:
            raise ValidationError(f"No QuantumNFT contract configured for {self.network.display_name}")
        return Web3.to_checksum_address(self.network.nft_contract_address)

    @staticmethod
    def _checksum(address: str, field: str) -> str:
        if not Web3.is_address(address):
            raise ValidationError(f"Invalid {field} address: {address}")
        return Web3.to_checksum_address(address)

    async def _ensure_chain(self, provider: EthereumProvider) -> None:
        try:
            chain_id = await provider.request(ETH_CHAIN_ID)
        except ProviderRpcError as e:
            raise WalletConnectionError(f"Could not read wallet chain id: {e.message}") from e

        actual = int(chain_id, 16) if isinstance(chain_id, str) else int(chain_id)
        if actual != self.network.chain_id:
            raise NetworkMismatchError(expected=self.network.chain_id, actual=actual)

    async def _estimate_gas(self, pending: EVMCall) -> int:
        try:
            estimate = await self._web3.eth.estimate_gas(
                {"from": pending.sender, "to": pending.to, "data": pending.data, "value": pending.value_wei}
            )
        except (Web3Exception, ValueError) as e:
            raise SubmissionError(f"Gas estimation failed: {_node_reason(e)}", reason=_node_reason(e)) from e
        except Exception as e:
            raise QueryError(f"Gas estimation failed, RPC unreachable: {e}") from e
        return estimate * self._gas_buffer_percent // 100

    async def _call(self, signature: str, arg_types: Sequence[str], args: Sequence[Any], output_type: str) -> Any:
        data = encode_call(signature, arg_types, args)
        try:
            result = await self._web3.eth.call({"to": self._contract_address(), "data": data})
            return eth_abi.decode([output_type], bytes(result))[0]
        except ValidationError:
            raise
        except Exception as e:
            raise QueryError(f"Contract call {signature} failed: {e}") from e

    def _chain_parameters(self) -> dict:
        return {
            "chainId": hex(self.network.chain_id),
            "chainName": self.network.display_name,
            "nativeCurrency": {
                "name": self.network.native_currency_symbol,
                "symbol": self.network.native_currency_symbol,
                "decimals": 18,
            },
            "rpcUrls": [self.network.endpoint_url],
            "blockExplorerUrls": [self.network.explorer_url] if self.network.explorer_url else [],
        }


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    return bytes(value)


def _node_reason(error: Exception) -> str:
    if error.args and isinstance(error.args[0], dict):
        return str(error.args[0].get("message") or error.args[0])
    return getattr(error, "message", None) or str(error)
