"""
Core Services Dependency

Builds the wallet core once per application and hands it to endpoints.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from fastapi import Request

from api.config import Settings
from qchain_offchain.adapters import AdapterFactory
from qchain_offchain.config import CoreSettings
from qchain_offchain.enums import ChainFamily
from qchain_offchain.hash_client import ExternalHashClient
from qchain_offchain.mint import MintWorkflow
from qchain_offchain.payments import PaymentWorkflow
from qchain_offchain.providers import EthereumProvider, LedgerWalletConnector, LocalEthereumProvider
from qchain_offchain.session import WalletSessionManager
from qchain_offchain.storage import JsonFileStore, KeyValueStore


logger = logging.getLogger(__name__)


@dataclass
class CoreServices:
    """Wallet core objects shared by all requests"""

    core_settings: CoreSettings
    sessions: WalletSessionManager
    hash_client: ExternalHashClient
    mint: MintWorkflow
    payments: PaymentWorkflow
    # Held for the whole mint or payment; the core itself does not serialize attempts
    mint_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    payment_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def build_services(
    settings: Settings,
    core_settings: CoreSettings | None = None,
    evm_provider: EthereumProvider | None = None,
    ledger_connector: LedgerWalletConnector | None = None,
    store: KeyValueStore | None = None,
    factory: AdapterFactory | None = None,
    hash_client: ExternalHashClient | None = None,
) -> CoreServices:
    """
    Wire registry, adapters, session manager, hash client, mint and payment workflows

    Args:
        settings: API settings (local signer key)
        core_settings: Wallet core settings, loaded from the environment when omitted
        evm_provider: Wallet provider; a LocalEthereumProvider is built from
            settings.evm_private_key when omitted
        ledger_connector: Wallet-connect session for the ledger-asset chain
        store: Session persistence, the configured state file when omitted
        factory: Adapter factory override
        hash_client: Hash service client override

    Returns:
        CoreServices
    """
    core_settings = core_settings or CoreSettings()
    registry = core_settings.build_registry()
    default_network = registry.resolve(core_settings.default_chain_key)

    if evm_provider is None and settings.evm_private_key and default_network.chain_family == ChainFamily.EVM:
        evm_provider = LocalEthereumProvider(
            settings.evm_private_key, chain_id=default_network.chain_id, rpc_url=default_network.endpoint_url
        )
        logger.info(f"Using local EVM signer on {default_network.display_name}")

    factory = factory or AdapterFactory(core_settings, evm_provider=evm_provider, ledger_connector=ledger_connector)
    sessions = WalletSessionManager(
        registry,
        factory,
        store if store is not None else JsonFileStore(core_settings.state_file),
        default_chain_key=default_network.chain_key,
    )
    hash_client = hash_client or ExternalHashClient(
        core_settings.hash_service_url, timeout=core_settings.hash_service_timeout
    )
    mint = MintWorkflow(sessions, hash_client, confirmation_budget=core_settings.confirmation_rounds)
    payments = PaymentWorkflow(sessions, confirmation_budget=core_settings.confirmation_rounds)

    return CoreServices(
        core_settings=core_settings,
        sessions=sessions,
        hash_client=hash_client,
        mint=mint,
        payments=payments,
    )


def get_services(request: Request) -> CoreServices:
    """FastAPI dependency returning the application's CoreServices"""
    return request.app.state.services


def get_sessions(request: Request) -> WalletSessionManager:
    return get_services(request).sessions
