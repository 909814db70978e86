from __future__ import annotations

import logging
from enum import Enum
from types import TracebackType
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncEngine

from localnode_engine.app.application.services.local_node import LocalNode
from localnode_engine.app.config import Settings
from localnode_engine.app.infrastructure.adapters.block_store import SqlAlchemyBlockStore
from localnode_engine.app.infrastructure.adapters.consensus_state import FileRoundStateSource
from localnode_engine.app.infrastructure.adapters.event_bus import InMemoryEventBus
from localnode_engine.app.infrastructure.adapters.genesis import FileGenesisProvider
from localnode_engine.app.infrastructure.adapters.state_store import SqlAlchemyStateStore
from localnode_engine.app.infrastructure.db.engine import create_app_async_engine, create_schema
from localnode_engine.app.infrastructure.decoders.tx_decoder import JsonTxDecoder
from localnode_engine.app.infrastructure.factories.indexers_factory import indexers_factory
from localnode_engine.app.infrastructure.services.indexer_service import IndexerService


logger = logging.getLogger(__name__)

EngineFactory = Callable[[Settings], AsyncEngine]


class NodeState(str, Enum):
    UNINITIALIZED = "uninitialized"
    BOOTSTRAPPING = "bootstrapping"
    RUNNING = "running"
    STOPPED = "stopped"


class LocalNodeLifecycle:
    """
    Wires the local node's collaborators once and tears them down on stop.

    States: UNINITIALIZED -> BOOTSTRAPPING -> RUNNING -> STOPPED.

    - start(): creates the engine, loads genesis, starts the event bus and
      the indexer service, then builds the LocalNode facade. A failure at
      any step releases what was already acquired and the lifecycle ends in
      STOPPED without ever being RUNNING.
    - stop(): idempotent, terminal; safe when some subsystems never started.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        engine_factory: EngineFactory = create_app_async_engine,
    ) -> None:
        self._settings = settings
        self._engine_factory = engine_factory
        self._state = NodeState.UNINITIALIZED

        self._engine: AsyncEngine | None = None
        self._event_bus: InMemoryEventBus | None = None
        self._indexer_service: IndexerService | None = None
        self._node: LocalNode | None = None

    @property
    def state(self) -> NodeState:
        return self._state

    @property
    def node(self) -> LocalNode:
        if self._state is not NodeState.RUNNING or self._node is None:
            raise RuntimeError(f"local node is not running (state={self._state.value})")
        return self._node

    @property
    def event_bus(self) -> InMemoryEventBus:
        if self._event_bus is None:
            raise RuntimeError("event bus not created")
        return self._event_bus

    async def start(self) -> LocalNode:
        if self._state is not NodeState.UNINITIALIZED:
            raise RuntimeError(f"cannot start local node from state {self._state.value}")

        self._state = NodeState.BOOTSTRAPPING
        settings = self._settings
        logger.info(
            "Bootstrapping local node: home=%s, tx_indexer=%s",
            settings.node_home,
            settings.tx_indexer,
        )

        try:
            self._engine = self._engine_factory(settings)
            if settings.create_schema:
                await create_schema(self._engine)

            if settings.genesis_file is None or settings.round_state_file is None:
                raise ValueError("genesis_file and round_state_file must be configured")
            genesis = FileGenesisProvider(path=settings.genesis_file).genesis_doc()

            self._event_bus = InMemoryEventBus()
            await self._event_bus.start()

            tx_indexer, block_indexer = indexers_factory(settings.tx_indexer, self._engine)
            self._indexer_service = IndexerService(
                tx_indexer=tx_indexer,
                block_indexer=block_indexer,
                event_bus=self._event_bus,
            )
            await self._indexer_service.start()

            self._node = LocalNode(
                genesis=genesis,
                block_store=SqlAlchemyBlockStore(engine=self._engine),
                state_store=SqlAlchemyStateStore(engine=self._engine),
                tx_indexer=tx_indexer,
                consensus_state=FileRoundStateSource(path=settings.round_state_file),
                event_bus=self._event_bus,
                tx_decoder=JsonTxDecoder(),
                event_capacity=settings.event_bus_capacity,
                on_stop=self.stop,
            )
        except Exception:
            logger.exception("Local node bootstrap failed, releasing acquired resources")
            await self._release()
            self._state = NodeState.STOPPED
            raise

        self._state = NodeState.RUNNING
        logger.info("Local node running: chain_id=%s", genesis.chain_id)
        return self._node

    async def stop(self) -> None:
        if self._state is NodeState.STOPPED:
            return
        await self._release()
        self._state = NodeState.STOPPED
        logger.info("Local node stopped")

    async def _release(self) -> None:
        if self._indexer_service is not None:
            try:
                await self._indexer_service.stop()
            except Exception:
                logger.exception("Failed to stop indexer service")
            self._indexer_service = None

        if self._event_bus is not None:
            try:
                await self._event_bus.stop()
            except Exception:
                logger.exception("Failed to stop event bus")

        if self._engine is not None:
            try:
                await self._engine.dispose()
            except Exception:
                logger.exception("Failed to dispose database engine")
            self._engine = None

        self._node = None

    async def __aenter__(self) -> LocalNode:
        return await self.start()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()


async def open_local_node(settings: Settings) -> LocalNode:
    """Start a lifecycle for `settings` and return its running facade."""
    return await LocalNodeLifecycle(settings).start()
