"""
Wallet Session Manager

Owns the single WalletSession and every transition of it:

    Disconnected -> Connecting -> Connected -> Disconnected

Selecting another network tears the current session down completely before
the new connect begins, so no address, balance or asset of the old chain
family survives into the new one. Every transition into or out of Connected
bumps the session generation, which in-flight transactions use to detect
that the session changed under them.
"""

import asyncio
import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Coroutine, Dict, List, Optional, Tuple

from .adapters.base import ChainAdapter, Unsubscribe
from .enums import ChainFamily, SessionState
from .errors import QChainError, QueryError, StaleSessionError, WalletConnectionError
from .models import NetworkConfig, WalletSession
from .networks import DEFAULT_CHAIN_KEY, NetworkRegistry
from .storage import KeyValueStore


logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "qchain.session."
LAST_FAMILY_KEY = f"{SESSION_KEY_PREFIX}last"

AdapterFactory = Callable[[NetworkConfig], ChainAdapter]


def session_key(chain_family: ChainFamily) -> str:
    """Storage key of the persisted session record for a chain family"""
    return f"{SESSION_KEY_PREFIX}{chain_family.value}"


class WalletSessionManager:
    """Single owner of the active wallet session"""

    def __init__(
        self,
        registry: NetworkRegistry,
        adapter_factory: AdapterFactory,
        store: KeyValueStore,
        default_chain_key: str = DEFAULT_CHAIN_KEY,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the session manager

        Args:
            registry: Supported networks
            adapter_factory: Returns the adapter serving a network
            store: Persistence for the last connected address per chain family
            default_chain_key: Network selected until the caller picks another
            clock: Source of connection timestamps
        """
        self.registry = registry
        self.selected_chain_key = registry.resolve(default_chain_key).chain_key
        self._adapter_factory = adapter_factory
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._session = WalletSession()
        self._generation = 0
        self._attempt = 0
        self._adapter: Optional[ChainAdapter] = None
        self._network: Optional[NetworkConfig] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._notification_task: Optional[asyncio.Task] = None

    # ============================================================================
    # State
    # ============================================================================

    @property
    def session(self) -> WalletSession:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def active_adapter(self) -> Optional[ChainAdapter]:
        """Adapter of the Connected session, None otherwise"""
        return self._adapter if self._session.is_connected else None

    @property
    def active_network(self) -> Optional[NetworkConfig]:
        return self._network if self._session.is_connected else None

    @property
    def selected_network(self) -> NetworkConfig:
        return self.registry.resolve(self.selected_chain_key)

    @property
    def selected_adapter(self) -> ChainAdapter:
        """Adapter of the selected network, usable for reads without a session"""
        return self._adapter_factory(self.selected_network)

    @property
    def notification_task(self) -> Optional[asyncio.Task]:
        """Reconnect scheduled by the latest wallet notification, if any"""
        return self._notification_task

    def get_session_state(self) -> WalletSession:
        return self._session

    def capture_generation(self) -> int:
        """Generation of the Connected session; raises when there is none"""
        if not self._session.is_connected:
            raise StaleSessionError("No wallet session is connected")
        return self._generation

    def verify_generation(self, generation: int, transaction_id: Optional[str] = None) -> None:
        """Raise StaleSessionError unless the session is unchanged since capture"""
        if self._generation != generation or not self._session.is_connected:
            raise StaleSessionError(transaction_id=transaction_id)

    # ============================================================================
    # Transitions
    # ============================================================================

    async def connect(self, chain_key: Optional[str] = None) -> WalletSession:
        """
        Prompt the wallet for an account on a network

        Args:
            chain_key: Network to connect; defaults to the selected network

        Returns:
            The Connected session

        Raises:
            UnknownNetworkError: chain_key is not registered
            WalletConnectionError: No provider or the user declined
            StaleSessionError: A later transition superseded this attempt
        """
        network = self.registry.resolve(chain_key or self.selected_chain_key)
        adapter = self._adapter_factory(network)
        attempt = self._begin(network)

        logger.info(f"Connecting wallet on {network.display_name}")
        try:
            address = await adapter.connect()
        except QChainError as e:
            if attempt == self._attempt:
                logger.warning(f"Wallet connection on {network.display_name} failed: {e.message}")
                self._reset(network)
            raise

        if attempt != self._attempt:
            logger.info(f"Discarding superseded connect on {network.display_name}")
            raise StaleSessionError("Connect attempt was superseded by another session change")

        self._establish(network, adapter, address)
        return self._session

    async def reconnect_session(self, chain_key: Optional[str] = None) -> Optional[WalletSession]:
        """
        Silently restore a previous session without prompting the wallet

        Args:
            chain_key: Network to restore on. When omitted, the last active
                chain family is restored on the network it was connected to.

        Returns:
            The Connected session, or None when there was nothing to restore
        """
        if chain_key is None:
            network, record = self._stored_session()
        else:
            network = self.registry.resolve(chain_key)
            record = self._load_record(network.chain_family)

        if self._session.is_connected and self._session.chain_key == network.chain_key:
            return self._session

        if record is None:
            self.selected_chain_key = network.chain_key
            return None

        adapter = self._adapter_factory(network)
        attempt = self._begin(network)
        try:
            address = await adapter.reconnect(record["address"])
        except QChainError as e:
            logger.warning(f"Could not restore wallet session on {network.display_name}: {e.message}")
            address = None

        if attempt != self._attempt:
            return None
        if address is None:
            logger.info(f"Wallet no longer authorizes {record['address']}, clearing stored session")
            self._forget(network.chain_family)
            self._reset(network)
            return None

        self._establish(network, adapter, address)
        return self._session

    async def disconnect(self) -> WalletSession:
        """Tear down the session from any state; idempotent"""
        adapter = self._adapter
        self._teardown(clear_record=True)
        if adapter is not None:
            await adapter.disconnect()
        return self._session

    async def switch_network(self, chain_key: str) -> WalletSession:
        """
        Select another network

        The current session is torn down first. The wallet is moved to the new
        network and reconnected only when a session was live.
        """
        network = self.registry.resolve(chain_key)
        was_live = self._session.state != SessionState.DISCONNECTED
        adapter = self._adapter_factory(network)

        self._teardown(clear_record=False)
        self.selected_chain_key = network.chain_key
        self._set_session(WalletSession(chain_family=network.chain_family, chain_key=network.chain_key))
        logger.info(f"Selected network {network.display_name}")

        if not was_live:
            return self._session

        await adapter.activate_network()
        return await self.connect(network.chain_key)

    # ============================================================================
    # Reads
    # ============================================================================

    async def query_balance(self) -> Decimal:
        """Balance of the connected address; zero when the lookup fails"""
        adapter, address = self._require_connected()
        try:
            balance = await adapter.query_balance(address)
        except QueryError as e:
            logger.warning(f"Balance lookup for {address} failed: {e.message}")
            balance = Decimal(0)

        if self._session.address == address:
            self._session = self._session.with_balance(balance, self._session.assets)
        return balance

    async def refresh(self) -> WalletSession:
        """Reload balance and owned assets; each degrades independently"""
        adapter, address = self._require_connected()
        balance = await self.query_balance()
        try:
            assets = tuple(await adapter.list_assets(address))
        except QueryError as e:
            logger.warning(f"Asset lookup for {address} failed: {e.message}")
            assets = ()

        if self._session.address == address:
            self._session = self._session.with_balance(balance, assets)
        return self._session

    # ============================================================================
    # Wallet notifications
    # ============================================================================

    def _on_accounts_changed(self, accounts: List[str]) -> None:
        if not accounts:
            logger.info("Wallet reported no accounts, disconnecting")
            self._teardown(clear_record=True)
            return
        logger.info("Wallet accounts changed, reconnecting")
        self._schedule(self.connect(self._session.chain_key or self.selected_chain_key))

    def _on_chain_changed(self, chain_id: Any) -> None:
        try:
            numeric = int(chain_id, 16) if isinstance(chain_id, str) else int(chain_id)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed chain id notification: {chain_id!r}")
            return

        network = self.registry.find_by_chain_id(numeric)
        if network is None:
            logger.warning(f"Wallet moved to unsupported chain {numeric}, disconnecting")
            self._teardown(clear_record=False)
            return
        logger.info(f"Wallet moved to {network.display_name}, reconnecting")
        self._schedule(self.connect(network.chain_key))

    def _schedule(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Wallet notification received outside an event loop, ignoring")
            coro.close()
            return
        self._notification_task = loop.create_task(self._run_notification(coro))

    async def _run_notification(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            await coro
        except QChainError as e:
            logger.warning(f"Reconnect after wallet notification failed: {e.message}")

    # ============================================================================
    # Internals
    # ============================================================================

    def _begin(self, network: NetworkConfig) -> int:
        if self._network is not None and self._network.chain_key != network.chain_key:
            self._teardown(clear_record=False)
        self._drop_subscription()
        self.selected_chain_key = network.chain_key
        self._attempt += 1
        self._set_session(
            WalletSession(chain_family=network.chain_family, chain_key=network.chain_key, is_connecting=True)
        )
        return self._attempt

    def _establish(self, network: NetworkConfig, adapter: ChainAdapter, address: str) -> None:
        self._adapter = adapter
        self._network = network
        self._set_session(
            WalletSession(
                chain_family=network.chain_family,
                chain_key=network.chain_key,
                address=address,
                connected_at=self._clock(),
            )
        )
        self._store.set(
            session_key(network.chain_family),
            json.dumps({"chain_key": network.chain_key, "address": address}),
        )
        self._store.set(LAST_FAMILY_KEY, network.chain_family.value)
        self._unsubscribe = adapter.subscribe(self._on_accounts_changed, self._on_chain_changed)
        logger.info(f"Wallet {address} connected on {network.display_name}")

    def _teardown(self, clear_record: bool) -> None:
        self._attempt += 1
        self._drop_subscription()
        family = self._session.chain_family
        if clear_record and family is not None:
            self._forget(family)
        if self._session.is_connected:
            logger.info(f"Wallet {self._session.address} disconnected")
        self._adapter = None
        self._network = None
        self._set_session(WalletSession())

    def _reset(self, network: NetworkConfig) -> None:
        """Back to Disconnected on a network after a failed connect or restore"""
        self._drop_subscription()
        self._adapter = None
        self._network = None
        self._set_session(WalletSession(chain_family=network.chain_family, chain_key=network.chain_key))

    def _forget(self, chain_family: ChainFamily) -> None:
        self._store.delete(session_key(chain_family))
        if self._store.get(LAST_FAMILY_KEY) == chain_family.value:
            self._store.delete(LAST_FAMILY_KEY)

    def _drop_subscription(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _set_session(self, session: WalletSession) -> None:
        previous = self._session
        if previous.is_connected or session.is_connected:
            self._generation += 1
        self._session = replace(session, generation=self._generation)

    def _load_record(self, chain_family: ChainFamily) -> Optional[Dict[str, str]]:
        raw = self._store.get(session_key(chain_family))
        if not raw:
            return None
        try:
            record = json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable session record for {chain_family.value}")
            self._store.delete(session_key(chain_family))
            return None
        if not isinstance(record, dict) or not record.get("address"):
            return None
        return record

    def _stored_session(self) -> Tuple[NetworkConfig, Optional[Dict[str, str]]]:
        """Network and record of the last active session, falling back to the selected network"""
        selected = self.selected_network
        families = [selected.chain_family]
        try:
            last = ChainFamily(self._store.get(LAST_FAMILY_KEY))
        except ValueError:
            last = None
        if last is not None and last != selected.chain_family:
            families.insert(0, last)

        for family in families:
            record = self._load_record(family)
            if record is None:
                continue
            stored_key = record.get("chain_key")
            if stored_key is None:
                if family == selected.chain_family:
                    return selected, record
                continue
            if stored_key not in self.registry:
                logger.warning(f"Discarding session record for unknown network {stored_key}")
                self._forget(family)
                continue
            return self.registry.resolve(stored_key), record

        return selected, None

    def _require_connected(self):
        if not self._session.is_connected or self._adapter is None:
            raise WalletConnectionError("No wallet connected")
        return self._adapter, self._session.address
