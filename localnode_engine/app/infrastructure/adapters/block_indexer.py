from __future__ import annotations

import logging
from typing import Any, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine

from localnode_engine.app.domain.models import Event
from localnode_engine.app.infrastructure.db.models.indexer import BlockEventDB


logger = logging.getLogger(__name__)


class NullBlockIndexer:
    @property
    def enabled(self) -> bool:
        return False

    async def index(self, *, height: int, events: Sequence[Event]) -> None:
        return None


class SqlAlchemyBlockIndexer:
    """
    Keyed block events indexer: stores `block.height` plus every indexed
    begin/end block event attribute of a height into block_events.
    """

    def __init__(self, *, engine: AsyncEngine) -> None:
        self._engine = engine

    @property
    def enabled(self) -> bool:
        return True

    async def index(self, *, height: int, events: Sequence[Event]) -> None:
        payload: list[dict[str, Any]] = [
            {"height": height, "composite_key": "block.height", "value": str(height)}
        ]
        for event in events:
            for attr in event.attributes:
                if attr.index:
                    payload.append(
                        {
                            "height": height,
                            "composite_key": f"{event.type}.{attr.key}",
                            "value": attr.value,
                        }
                    )

        async with self._engine.begin() as conn:
            await conn.execute(sa.delete(BlockEventDB).where(BlockEventDB.height == height))
            await conn.execute(sa.insert(BlockEventDB), payload)

        logger.debug("Indexed block events: height=%s, rows=%s", height, len(payload))
