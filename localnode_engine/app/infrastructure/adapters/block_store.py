from __future__ import annotations

import logging
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from localnode_engine.app.domain.models import (
    Block,
    BlockHeader,
    BlockID,
    BlockMeta,
    PartSetHeader,
)
from localnode_engine.app.infrastructure.db.models.blocks import BlockDB, BlockMetaDB, BlockTxDB


logger = logging.getLogger(__name__)


_SELECT_BLOCK_BOUNDS_SQL = text(
    """
    SELECT
        MIN(height) AS base,
        MAX(height) AS height
    FROM blocks
    """
)


def _utc(ts: datetime) -> datetime:
    # SQLite hands timestamps back naive; they are stored as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def _header_from_row(row: sa.Row) -> BlockHeader:
    return BlockHeader(
        chain_id=row.chain_id,
        height=row.height,
        time=_utc(row.time),
        proposer_address=row.proposer_address,
        app_hash=row.app_hash,
        last_block_hash=row.last_block_hash,
    )


class SqlAlchemyBlockStore:
    """
    SQLAlchemy implementation of BlockStore.

    Reads the blocks / block_meta / block_txs tables the node writes. The
    chain bounds are computed from the blocks table on every call; there is
    no caching, so each query sees whatever the node has committed.
    """

    def __init__(self, *, engine: AsyncEngine) -> None:
        self._engine = engine

    async def _bounds(self) -> tuple[int, int]:
        async with self._engine.connect() as conn:
            result = await conn.execute(_SELECT_BLOCK_BOUNDS_SQL)
            row = result.one_or_none()

        if row is None or row.height is None:
            return 0, 0
        return int(row.base), int(row.height)

    async def height(self) -> int:
        _, height = await self._bounds()
        return height

    async def base(self) -> int:
        base, _ = await self._bounds()
        return base

    async def load_block(self, height: int) -> Block | None:
        async with self._engine.connect() as conn:
            header_row = (
                await conn.execute(sa.select(BlockDB.__table__).where(BlockDB.height == height))
            ).one_or_none()
            if header_row is None:
                return None

            tx_rows = await conn.execute(
                sa.select(BlockTxDB.tx)
                .where(BlockTxDB.height == height)
                .order_by(BlockTxDB.tx_index)
            )
            txs = tuple(bytes(r.tx) for r in tx_rows)

        logger.debug("Loaded block: height=%s, txs=%s", height, len(txs))
        return Block(header=_header_from_row(header_row), txs=txs)

    async def load_block_meta(self, height: int) -> BlockMeta | None:
        stmt = (
            sa.select(
                BlockMetaDB.block_hash,
                BlockMetaDB.part_set_total,
                BlockMetaDB.part_set_hash,
                BlockMetaDB.block_size,
                BlockMetaDB.num_txs,
                BlockDB.chain_id,
                BlockDB.height,
                BlockDB.time,
                BlockDB.proposer_address,
                BlockDB.app_hash,
                BlockDB.last_block_hash,
            )
            .join(BlockDB, BlockDB.height == BlockMetaDB.height)
            .where(BlockMetaDB.height == height)
        )
        async with self._engine.connect() as conn:
            row = (await conn.execute(stmt)).one_or_none()

        if row is None:
            return None
        return BlockMeta(
            block_id=BlockID(
                hash=row.block_hash,
                part_set_header=PartSetHeader(total=row.part_set_total, hash=row.part_set_hash),
            ),
            header=_header_from_row(row),
            block_size=row.block_size,
            num_txs=row.num_txs,
        )
