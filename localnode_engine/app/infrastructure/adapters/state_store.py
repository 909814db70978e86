from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine

from localnode_engine.app.domain.errors import NotFoundError
from localnode_engine.app.domain.models import ExecutionResults, Validator, ValidatorSet
from localnode_engine.app.infrastructure.db.models.state import ExecutionResultsDB, ValidatorDB


class SqlAlchemyStateStore:
    """
    SQLAlchemy implementation of StateStore.

    Validator sets are stored only at the heights where they changed, so a
    lookup for height H loads the set last changed at or below H.
    """

    def __init__(self, *, engine: AsyncEngine) -> None:
        self._engine = engine

    async def load_validators(self, height: int) -> ValidatorSet:
        last_changed = (
            sa.select(sa.func.max(ValidatorDB.height))
            .where(ValidatorDB.height <= height)
            .scalar_subquery()
        )
        stmt = (
            sa.select(ValidatorDB.__table__)
            .where(ValidatorDB.height == last_changed)
            .order_by(ValidatorDB.position)
        )
        async with self._engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()

        if not rows:
            raise NotFoundError(
                f"could not find validator set for height #{height}", stage="state_store"
            )

        validators: list[Validator] = []
        proposer: Validator | None = None
        for r in rows:
            val = Validator(
                address=r.address,
                pub_key=r.pub_key or {},
                voting_power=r.voting_power,
                proposer_priority=r.proposer_priority,
            )
            validators.append(val)
            if r.is_proposer:
                proposer = val

        return ValidatorSet(validators=tuple(validators), proposer=proposer)

    async def load_execution_results(self, height: int) -> ExecutionResults | None:
        async with self._engine.connect() as conn:
            results = (
                await conn.execute(
                    sa.select(ExecutionResultsDB.results).where(ExecutionResultsDB.height == height)
                )
            ).scalar_one_or_none()

        if results is None:
            return None
        return ExecutionResults.model_validate(results)
