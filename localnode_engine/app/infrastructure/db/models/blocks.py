from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Integer,
    LargeBinary,
    PrimaryKeyConstraint,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from localnode_engine.app.infrastructure.db.db_base import BaseDB


class BlockDB(BaseDB):
    """
    Committed block headers, one row per height.

    MIN(height) is the pruning floor (base), MAX(height) the latest height.
    """

    __tablename__ = "blocks"

    height: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    chain_id: Mapped[str] = mapped_column(Text, nullable=False)
    # Canonical block timestamp (UTC)
    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    proposer_address: Mapped[str] = mapped_column(Text, nullable=False, default="")
    app_hash: Mapped[str] = mapped_column(Text, nullable=False, default="")
    last_block_hash: Mapped[str] = mapped_column(Text, nullable=False, default="")


class BlockMetaDB(BaseDB):
    """
    Block identity and size metadata.

    May be missing for the earliest retained height; readers degrade to an
    empty block id.
    """

    __tablename__ = "block_meta"

    height: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    block_hash: Mapped[str] = mapped_column(Text, nullable=False)
    part_set_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    part_set_hash: Mapped[str] = mapped_column(Text, nullable=False, default="")
    block_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    num_txs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class BlockTxDB(BaseDB):
    """Raw transactions of a block, in block order."""

    __tablename__ = "block_txs"
    __table_args__ = (PrimaryKeyConstraint("height", "tx_index"),)

    height: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tx_index: Mapped[int] = mapped_column(Integer, nullable=False)
    tx: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
