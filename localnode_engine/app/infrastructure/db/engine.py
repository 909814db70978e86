from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from localnode_engine.app.config import Settings
from localnode_engine.app.infrastructure.db.db_base import BaseDB

# register tables on BaseDB.metadata
from localnode_engine.app.infrastructure.db.models import blocks as _blocks  # noqa: F401
from localnode_engine.app.infrastructure.db.models import indexer as _indexer  # noqa: F401
from localnode_engine.app.infrastructure.db.models import state as _state  # noqa: F401


def create_app_async_engine(settings: Settings, *, echo: bool = False) -> AsyncEngine:
    """
    AsyncEngine shared by the block store, state store and indexers of one
    node lifecycle. SQLite URLs (the default) and postgresql+asyncpg both work.
    """
    return create_async_engine(
        settings.database_url,
        echo=echo,
        pool_pre_ping=True,
    )


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(BaseDB.metadata.create_all)
