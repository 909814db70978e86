from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field


def tx_hash(raw_tx: bytes) -> bytes:
    """Transaction hash as the node computes it: sha256 over the raw bytes."""
    return hashlib.sha256(raw_tx).digest()


def tx_hash_hex(raw_tx: bytes) -> str:
    return tx_hash(raw_tx).hex().upper()


# -----------------------------------------------------------------------------
# Execution results (stored as JSON by the node, so pydantic models)
# -----------------------------------------------------------------------------
class EventAttribute(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    value: str = ""
    index: bool = False


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    attributes: list[EventAttribute] = Field(default_factory=list)


class ExecTxResult(BaseModel):
    """Outcome of executing a single transaction (DeliverTx response)."""

    model_config = ConfigDict(frozen=True)

    code: int = 0
    data: str = ""
    log: str = ""
    info: str = ""
    gas_wanted: int = 0
    gas_used: int = 0
    events: list[Event] = Field(default_factory=list)
    codespace: str = ""


class ValidatorUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    pub_key: dict[str, Any]
    power: int = 0


class ExecutionResults(BaseModel):
    """
    Recorded outcome of applying a block: per-tx results plus the
    begin/end block events and the updates emitted at end block.
    """

    model_config = ConfigDict(frozen=True)

    txs_results: list[ExecTxResult] = Field(default_factory=list)
    begin_block_events: list[Event] = Field(default_factory=list)
    end_block_events: list[Event] = Field(default_factory=list)
    validator_updates: list[ValidatorUpdate] = Field(default_factory=list)
    consensus_param_updates: dict[str, Any] | None = None


class Validator(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    pub_key: dict[str, Any] = Field(default_factory=dict)
    voting_power: int = 0
    proposer_priority: int = 0


# -----------------------------------------------------------------------------
# Documents owned by external collaborators
# -----------------------------------------------------------------------------
class GenesisValidator(BaseModel):
    address: str = ""
    pub_key: dict[str, Any] = Field(default_factory=dict)
    power: int = 0
    name: str = ""


class GenesisDoc(BaseModel):
    genesis_time: datetime
    chain_id: str
    initial_height: int = 1
    consensus_params: dict[str, Any] | None = None
    validators: list[GenesisValidator] = Field(default_factory=list)
    app_hash: str = ""
    app_state: dict[str, Any] | None = None


class RoundStateProposer(BaseModel):
    address: str = ""
    index: int = 0


class RoundStateSimple(BaseModel):
    """Public view of the consensus engine's current round."""

    model_config = ConfigDict(populate_by_name=True)

    height_round_step: str = Field(alias="height/round/step")
    start_time: datetime
    proposal_block_hash: str = ""
    locked_block_hash: str = ""
    valid_block_hash: str = ""
    height_vote_set: list[dict[str, Any]] = Field(default_factory=list)
    proposer: RoundStateProposer = Field(default_factory=RoundStateProposer)

    @property
    def height(self) -> int:
        return int(self.height_round_step.split("/")[0])


class Coin(BaseModel):
    model_config = ConfigDict(extra="forbid")

    denom: str
    amount: str


class Fee(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: list[Coin] = Field(default_factory=list)
    gas_limit: int = 0
    payer: str = ""
    granter: str = ""


class AuthInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    signer_infos: list[dict[str, Any]] = Field(default_factory=list)
    fee: Fee = Field(default_factory=Fee)


class TxBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    messages: list[dict[str, Any]]
    memo: str = ""
    timeout_height: int = 0


class DecodedTx(BaseModel):
    """Typed representation of a raw transaction payload."""

    model_config = ConfigDict(extra="forbid")

    body: TxBody
    auth_info: AuthInfo = Field(default_factory=AuthInfo)
    signatures: list[str] = Field(default_factory=list)

    @property
    def message_types(self) -> list[str]:
        return [str(m.get("@type", "")) for m in self.body.messages]


# -----------------------------------------------------------------------------
# Block storage values
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class PartSetHeader:
    total: int = 0
    hash: str = ""


@dataclass(frozen=True)
class BlockID:
    hash: str = ""
    part_set_header: PartSetHeader = field(default_factory=PartSetHeader)

    @classmethod
    def empty(cls) -> "BlockID":
        return cls()

    def is_empty(self) -> bool:
        return not self.hash and self.part_set_header == PartSetHeader()


@dataclass(frozen=True)
class BlockHeader:
    chain_id: str
    height: int
    time: datetime
    proposer_address: str = ""
    app_hash: str = ""
    last_block_hash: str = ""


@dataclass(frozen=True)
class Block:
    header: BlockHeader
    txs: tuple[bytes, ...] = ()

    @property
    def height(self) -> int:
        return self.header.height


@dataclass(frozen=True)
class BlockMeta:
    block_id: BlockID
    header: BlockHeader
    block_size: int = 0
    num_txs: int = 0


@dataclass(frozen=True)
class ValidatorSet:
    validators: tuple[Validator, ...]
    proposer: Validator | None = None


# -----------------------------------------------------------------------------
# Indexer values
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class TxResult:
    """
    One transaction search hit as stored by the tx indexer.

    `index` is the position of the transaction inside its block.
    """

    height: int
    index: int
    result: ExecTxResult
    tx: bytes


# -----------------------------------------------------------------------------
# Facade results
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ResultGenesis:
    genesis: GenesisDoc


@dataclass(frozen=True)
class ResultValidators:
    block_height: int
    validators: tuple[Validator, ...]
    count: int
    total: int


@dataclass(frozen=True)
class ResultBlock:
    block_id: BlockID
    block: Block


@dataclass(frozen=True)
class ResultBlockResults:
    height: int
    txs_results: tuple[ExecTxResult, ...]
    begin_block_events: tuple[Event, ...]
    end_block_events: tuple[Event, ...]
    validator_updates: tuple[ValidatorUpdate, ...]
    consensus_param_updates: dict[str, Any] | None


@dataclass(frozen=True)
class ResultTx:
    hash: bytes
    height: int
    index: int
    tx_result: ExecTxResult
    tx: bytes


@dataclass(frozen=True)
class ResultTxSearch:
    txs: tuple[ResultTx, ...]
    total_count: int


@dataclass(frozen=True)
class ResultEvent:
    query: str
    data: Mapping[str, Any]
    events: Mapping[str, list[str]]


@dataclass(frozen=True)
class TransactionResponse:
    """
    Fully resolved transaction: indexer hit + enclosing block linkage +
    decoded payload.
    """

    hash: str
    height: int
    index: int
    code: int
    codespace: str
    gas_wanted: int
    gas_used: int
    raw_log: str
    events: tuple[Event, ...]
    tx: DecodedTx
    timestamp: str
    block_hash: str = ""

    def successful(self) -> bool:
        return self.code == 0

    def find_events_by_type(self, event_type: str) -> list[Event]:
        return [e for e in self.events if e.type == event_type]

    @staticmethod
    def find_attribute_by_key(event: Event, key: str) -> str | None:
        for attr in event.attributes:
            if attr.key == key:
                return attr.value
        return None
