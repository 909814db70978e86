from __future__ import annotations

import logging
import math
from decimal import Decimal
from typing import Any, Final

import sqlalchemy as sa
from eth_utils import decode_hex
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from localnode_engine.app.domain.models import ExecTxResult, TxResult, tx_hash
from localnode_engine.app.domain.query import Condition, Operator, Query
from localnode_engine.app.infrastructure.db.models.indexer import TxEventDB, TxResultDB


logger = logging.getLogger(__name__)

# every indexed tx is a Tx event, so conditions on it never filter anything
TM_EVENT_KEY: Final[str] = "tm.event"
TX_HEIGHT_KEY: Final[str] = "tx.height"
TX_HASH_KEY: Final[str] = "tx.hash"


def _height_clause(condition: Condition) -> sa.ColumnElement[bool] | None:
    """
    SQL filter for a `tx.height` condition, None when it can't be expressed
    as an integer comparison (string operands).
    """
    column = TxResultDB.height
    op, operand = condition.op, condition.operand
    if op is Operator.EXISTS:
        return sa.true()
    if not isinstance(operand, Decimal):
        return None

    # heights are integers: round fractional bounds onto the column's domain
    floor, ceil = math.floor(operand), math.ceil(operand)
    if op is Operator.EQ:
        return column == floor if floor == ceil else sa.false()
    if op is Operator.LT:
        return column < ceil
    if op is Operator.LTE:
        return column <= floor
    if op is Operator.GT:
        return column > floor
    if op is Operator.GTE:
        return column >= ceil
    return None


def _normalize_hash_condition(condition: Condition) -> Condition:
    """Hashes are compared as upper-case hex without a 0x prefix."""
    if not isinstance(condition.operand, str):
        return condition
    operand = condition.operand.upper()
    if operand.startswith("0X"):
        operand = operand[2:]
    return Condition(key=condition.key, op=condition.op, operand=operand)


class NullTxIndexer:
    """Tx indexer used when indexing is disabled: stores nothing, finds nothing."""

    @property
    def enabled(self) -> bool:
        return False

    async def get(self, hash: bytes) -> TxResult | None:
        return None

    async def search(self, query: Query) -> list[TxResult]:
        return []

    async def index(self, result: TxResult) -> None:
        return None


class SqlAlchemyTxIndexer:
    """
    Keyed tx indexer on top of tx_results / tx_events.

    Strategy for search:
    - each condition selects the set of tx hashes it matches
      (`tx.height` / `tx.hash` are evaluated against tx_results,
      any other key against the indexed event attributes),
    - the sets are intersected (conditions are AND-ed),
    - the surviving hashes are loaded as search hits, unsorted.
    """

    def __init__(self, *, engine: AsyncEngine) -> None:
        self._engine = engine

    @property
    def enabled(self) -> bool:
        return True

    async def get(self, hash: bytes) -> TxResult | None:
        async with self._engine.connect() as conn:
            row = (
                await conn.execute(
                    sa.select(TxResultDB.__table__).where(TxResultDB.hash == hash)
                )
            ).one_or_none()

        if row is None:
            return None
        return self._hit_from_row(row)

    async def search(self, query: Query) -> list[TxResult]:
        async with self._engine.connect() as conn:
            candidates: set[bytes] | None = None
            for condition in query.conditions:
                if condition.key == TM_EVENT_KEY:
                    continue

                matched = await self._match_condition(conn, condition)
                candidates = matched if candidates is None else candidates & matched
                if not candidates:
                    logger.debug("Tx search short-circuited on %s", condition)
                    return []

            stmt = sa.select(TxResultDB.__table__)
            if candidates is not None:
                stmt = stmt.where(TxResultDB.hash.in_(sorted(candidates)))
            rows = (await conn.execute(stmt)).all()

        return [self._hit_from_row(r) for r in rows]

    async def _match_condition(self, conn: AsyncConnection, condition: Condition) -> set[bytes]:
        if condition.key == TX_HEIGHT_KEY:
            clause = _height_clause(condition)
            if clause is not None:
                rows = await conn.execute(sa.select(TxResultDB.hash).where(clause))
                return {bytes(r.hash) for r in rows}

            rows = await conn.execute(sa.select(TxResultDB.hash, TxResultDB.height))
            return {bytes(r.hash) for r in rows if condition.matches([str(r.height)])}

        if condition.key == TX_HASH_KEY:
            if condition.op is Operator.EQ and isinstance(condition.operand, str):
                try:
                    hash_bz = decode_hex(condition.operand)
                except ValueError:
                    return set()
                rows = await conn.execute(
                    sa.select(TxResultDB.hash).where(TxResultDB.hash == hash_bz)
                )
                return {bytes(r.hash) for r in rows}

            normalized = _normalize_hash_condition(condition)
            rows = await conn.execute(sa.select(TxResultDB.hash))
            return {
                bytes(r.hash)
                for r in rows
                if normalized.matches([bytes(r.hash).hex().upper()])
            }

        rows = await conn.execute(
            sa.select(TxEventDB.hash, TxEventDB.value).where(
                TxEventDB.composite_key == condition.key
            )
        )
        return {bytes(r.hash) for r in rows if condition.matches([r.value])}

    async def index(self, result: TxResult) -> None:
        hash_bz = tx_hash(result.tx)

        events_payload: list[dict[str, Any]] = []
        for event in result.result.events:
            if not event.type:
                continue
            for attr in event.attributes:
                if not attr.index:
                    continue
                events_payload.append(
                    {
                        "hash": hash_bz,
                        "height": result.height,
                        "composite_key": f"{event.type}.{attr.key}",
                        "value": attr.value,
                    }
                )

        async with self._engine.begin() as conn:
            # re-indexing a hash replaces the previous entry
            await conn.execute(sa.delete(TxEventDB).where(TxEventDB.hash == hash_bz))
            await conn.execute(sa.delete(TxResultDB).where(TxResultDB.hash == hash_bz))
            await conn.execute(
                sa.insert(TxResultDB),
                [
                    {
                        "hash": hash_bz,
                        "height": result.height,
                        "tx_index": result.index,
                        "tx": result.tx,
                        "result": result.result.model_dump(mode="json"),
                    }
                ],
            )
            if events_payload:
                await conn.execute(sa.insert(TxEventDB), events_payload)

        logger.debug(
            "Indexed tx: hash=%s, height=%s, index=%s, attributes=%s",
            hash_bz.hex().upper(),
            result.height,
            result.index,
            len(events_payload),
        )

    @staticmethod
    def _hit_from_row(row: sa.Row) -> TxResult:
        return TxResult(
            height=row.height,
            index=row.tx_index,
            result=ExecTxResult.model_validate(row.result),
            tx=bytes(row.tx),
        )
