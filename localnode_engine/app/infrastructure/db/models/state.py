from __future__ import annotations

from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Integer,
    PrimaryKeyConstraint,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from localnode_engine.app.infrastructure.db.db_base import BaseDB


class ValidatorDB(BaseDB):
    """
    Validator set members, stored only at the heights where the set changed.

    The set in effect at height H is the one stored at the greatest
    height <= H.
    """

    __tablename__ = "validators"
    __table_args__ = (PrimaryKeyConstraint("height", "position"),)

    height: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # order of the validator inside its set
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    pub_key: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    voting_power: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    proposer_priority: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    is_proposer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ExecutionResultsDB(BaseDB):
    """ABCI responses recorded for each executed block, as JSON."""

    __tablename__ = "execution_results"

    height: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    results: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
