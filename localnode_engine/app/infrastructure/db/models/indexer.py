from __future__ import annotations

from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Index,
    Integer,
    LargeBinary,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from localnode_engine.app.infrastructure.db.db_base import BaseDB


class TxResultDB(BaseDB):
    """
    Keyed tx index: one row per transaction hash.

    Holds everything needed to rebuild a search hit without touching the
    block store.
    """

    __tablename__ = "tx_results"
    __table_args__ = (
        # ordering / tx.height lookups
        Index("ix_tx_results_height_index", "height", "tx_index"),
    )

    hash: Mapped[bytes] = mapped_column(LargeBinary, primary_key=True)
    height: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tx_index: Mapped[int] = mapped_column(Integer, nullable=False)
    tx: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    result: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)


class TxEventDB(BaseDB):
    """Indexed event attributes of a transaction (`type.key` = value)."""

    __tablename__ = "tx_events"
    __table_args__ = (
        Index("ix_tx_events_key_value", "composite_key", "value"),
        Index("ix_tx_events_hash", "hash"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    hash: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    height: Mapped[int] = mapped_column(BigInteger, nullable=False)
    composite_key: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)


class BlockEventDB(BaseDB):
    """Indexed begin/end block event attributes, per height."""

    __tablename__ = "block_events"
    __table_args__ = (
        Index("ix_block_events_key_value", "composite_key", "value"),
        Index("ix_block_events_height", "height"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    height: Mapped[int] = mapped_column(BigInteger, nullable=False)
    composite_key: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
