"""
Pytest configuration and in-memory test doubles for the local node ports.
"""

import json
from datetime import datetime, timezone
from typing import Callable

import pytest

from localnode_engine.app.application.services.local_node import LocalNode
from localnode_engine.app.domain.models import (
    Block,
    BlockHeader,
    BlockID,
    BlockMeta,
    Event,
    EventAttribute,
    ExecTxResult,
    ExecutionResults,
    GenesisDoc,
    PartSetHeader,
    TxResult,
    Validator,
    ValidatorSet,
    tx_hash,
)
from localnode_engine.app.domain.errors import NotFoundError
from localnode_engine.app.domain.query import Query, flatten_events
from localnode_engine.app.infrastructure.adapters.event_bus import InMemoryEventBus
from localnode_engine.app.infrastructure.decoders.tx_decoder import JsonTxDecoder


CHAIN_ID = "localnet-1"
BLOCK_TIME = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def raw_tx(memo: str, *, sender: str = "cosmos1sender") -> bytes:
    """JSON encoded transaction the JsonTxDecoder accepts."""
    return json.dumps(
        {
            "body": {
                "messages": [
                    {
                        "@type": "/cosmos.bank.v1beta1.MsgSend",
                        "from_address": sender,
                        "to_address": "cosmos1recipient",
                        "amount": [{"denom": "stake", "amount": "10"}],
                    }
                ],
                "memo": memo,
            },
            "auth_info": {"fee": {"amount": [{"denom": "stake", "amount": "1"}], "gas_limit": 200000}},
            "signatures": ["c2ln"],
        },
        sort_keys=True,
    ).encode()


def make_hit(height: int, index: int, *, sender: str = "cosmos1sender") -> TxResult:
    return TxResult(
        height=height,
        index=index,
        result=ExecTxResult(
            code=0,
            gas_wanted=200000,
            gas_used=50000,
            log="[]",
            events=[
                Event(
                    type="message",
                    attributes=[
                        EventAttribute(key="sender", value=sender, index=True),
                        EventAttribute(key="action", value="send", index=True),
                    ],
                )
            ],
        ),
        tx=raw_tx(f"tx-{height}-{index}", sender=sender),
    )


def make_header(height: int) -> BlockHeader:
    return BlockHeader(
        chain_id=CHAIN_ID,
        height=height,
        time=BLOCK_TIME,
        proposer_address="PROPOSER",
        app_hash=f"APP{height}",
    )


class FakeBlockStore:
    def __init__(self, *, base: int = 1) -> None:
        self.blocks: dict[int, Block] = {}
        self.metas: dict[int, BlockMeta] = {}
        self._base = base
        self.calls: list[str] = []

    def add_block(self, height: int, txs: tuple[bytes, ...] = (), *, with_meta: bool = True) -> None:
        header = make_header(height)
        self.blocks[height] = Block(header=header, txs=txs)
        if with_meta:
            self.metas[height] = BlockMeta(
                block_id=BlockID(hash=f"HASH{height}", part_set_header=PartSetHeader(1, f"PS{height}")),
                header=header,
                num_txs=len(txs),
            )

    async def height(self) -> int:
        self.calls.append("height")
        return max(self.blocks, default=0)

    async def base(self) -> int:
        self.calls.append("base")
        return self._base

    async def load_block(self, height: int) -> Block | None:
        self.calls.append("load_block")
        return self.blocks.get(height)

    async def load_block_meta(self, height: int) -> BlockMeta | None:
        self.calls.append("load_block_meta")
        return self.metas.get(height)


class FakeStateStore:
    def __init__(self) -> None:
        self.validators: dict[int, ValidatorSet] = {}
        self.results: dict[int, ExecutionResults] = {}

    async def load_validators(self, height: int) -> ValidatorSet:
        if height not in self.validators:
            raise NotFoundError(f"could not find validator set for height #{height}", stage="state_store")
        return self.validators[height]

    async def load_execution_results(self, height: int) -> ExecutionResults | None:
        return self.results.get(height)


class FakeTxIndexer:
    def __init__(self, hits: list[TxResult] | None = None, *, enabled: bool = True) -> None:
        self.hits: list[TxResult] = list(hits or [])
        self._enabled = enabled
        self.calls: list[str] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def get(self, hash: bytes) -> TxResult | None:
        self.calls.append("get")
        for hit in self.hits:
            if tx_hash(hit.tx) == hash:
                return hit
        return None

    async def search(self, query: Query) -> list[TxResult]:
        self.calls.append("search")
        matched = []
        for hit in self.hits:
            events = flatten_events(hit.result.events)
            events["tx.height"] = [str(hit.height)]
            events["tm.event"] = ["Tx"]
            if query.matches(events):
                matched.append(hit)
        return matched

    async def index(self, result: TxResult) -> None:
        self.hits.append(result)


class FakeConsensusState:
    def __init__(self, snapshot: bytes) -> None:
        self.snapshot = snapshot

    def round_state_snapshot(self) -> bytes:
        return self.snapshot


class FailingStore(FakeBlockStore):
    async def height(self) -> int:
        raise ConnectionError("database is locked")


@pytest.fixture
def genesis_doc() -> GenesisDoc:
    return GenesisDoc(genesis_time=BLOCK_TIME, chain_id=CHAIN_ID, initial_height=1)


@pytest.fixture
def block_store() -> FakeBlockStore:
    store = FakeBlockStore(base=1)
    for h in range(1, 6):
        store.add_block(h)
    return store


@pytest.fixture
def state_store() -> FakeStateStore:
    store = FakeStateStore()
    val = Validator(address="VAL1", voting_power=10)
    store.validators[3] = ValidatorSet(validators=(val, Validator(address="VAL2", voting_power=5)), proposer=val)
    store.validators[5] = ValidatorSet(validators=(val,), proposer=val)
    store.results[5] = ExecutionResults(
        txs_results=[ExecTxResult(code=0, gas_used=10)],
        end_block_events=[Event(type="rewards", attributes=[EventAttribute(key="amount", value="5")])],
    )
    return store


@pytest.fixture
def scenario_hits() -> list[TxResult]:
    # deliberately out of order
    coords = [(3, 1), (1, 1), (5, 0), (2, 0), (3, 0), (1, 0), (3, 2)]
    return [make_hit(h, i) for h, i in coords]


@pytest.fixture
def tx_indexer(scenario_hits) -> FakeTxIndexer:
    return FakeTxIndexer(scenario_hits)


@pytest.fixture
def round_state_json() -> bytes:
    return json.dumps(
        {
            "height/round/step": "6/0/1",
            "start_time": "2024-01-15T12:00:05Z",
            "proposal_block_hash": "",
            "locked_block_hash": "",
            "valid_block_hash": "",
            "height_vote_set": [{"round": 0, "prevotes": [], "precommits": []}],
            "proposer": {"address": "VAL1", "index": 0},
        }
    ).encode()


@pytest.fixture
async def event_bus():
    bus = InMemoryEventBus()
    await bus.start()
    yield bus
    await bus.stop()


@pytest.fixture
def make_node(
    genesis_doc, block_store, state_store, tx_indexer, round_state_json, event_bus
) -> Callable[..., LocalNode]:
    def _make(**overrides) -> LocalNode:
        kwargs = dict(
            genesis=genesis_doc,
            block_store=block_store,
            state_store=state_store,
            tx_indexer=tx_indexer,
            consensus_state=FakeConsensusState(round_state_json),
            event_bus=event_bus,
            tx_decoder=JsonTxDecoder(),
        )
        kwargs.update(overrides)
        return LocalNode(**kwargs)

    return _make


@pytest.fixture
def node(make_node) -> LocalNode:
    return make_node()
