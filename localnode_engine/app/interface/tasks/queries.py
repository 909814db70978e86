from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy.engine import make_url

from localnode_engine.app.config import Settings
from localnode_engine.app.infrastructure.db.engine import create_app_async_engine, create_schema
from localnode_engine.app.infrastructure.factories.local_node_factory import LocalNodeLifecycle
from localnode_engine.app.interface.tasks.serialize import to_jsonable


async def latest_height_task(*, settings: Settings) -> Any:
    """Task: latest committed height of the local block store."""
    lifecycle = LocalNodeLifecycle(settings)
    node = await lifecycle.start()
    try:
        return await node.latest_height()
    finally:
        await lifecycle.stop()


async def genesis_task(*, settings: Settings) -> Any:
    lifecycle = LocalNodeLifecycle(settings)
    node = await lifecycle.start()
    try:
        return to_jsonable(await node.genesis())
    finally:
        await lifecycle.stop()


async def block_task(*, settings: Settings, height: int | None = None) -> Any:
    """
    Task: block at `height` (latest when omitted) with its block id.
    """
    lifecycle = LocalNodeLifecycle(settings)
    node = await lifecycle.start()
    try:
        return to_jsonable(await node.block(height))
    finally:
        await lifecycle.stop()


async def block_results_task(*, settings: Settings, height: int | None = None) -> Any:
    lifecycle = LocalNodeLifecycle(settings)
    node = await lifecycle.start()
    try:
        return to_jsonable(await node.block_results(height))
    finally:
        await lifecycle.stop()


async def block_txs_task(*, settings: Settings, height: int | None = None) -> Any:
    """
    Task: every transaction of the block at `height`, fully resolved
    through the tx indexer.
    """
    lifecycle = LocalNodeLifecycle(settings)
    node = await lifecycle.start()
    try:
        block = await node.block(height)
        return to_jsonable(await node.txs(block))
    finally:
        await lifecycle.stop()


async def validators_task(*, settings: Settings, height: int | None = None) -> Any:
    lifecycle = LocalNodeLifecycle(settings)
    node = await lifecycle.start()
    try:
        return to_jsonable(await node.validators(height))
    finally:
        await lifecycle.stop()


async def tx_task(*, settings: Settings, hash: str) -> Any:
    lifecycle = LocalNodeLifecycle(settings)
    node = await lifecycle.start()
    try:
        return to_jsonable(await node.tx(hash))
    finally:
        await lifecycle.stop()


async def tx_search_task(
    *,
    settings: Settings,
    query: str,
    page: int | None = None,
    per_page: int | None = None,
    order_by: str = "",
) -> Any:
    """
    Task: search indexed transactions.

    - query uses the indexer grammar (e.g. "transfer.recipient = 'addr' AND tx.height > 5"),
    - results are sorted by (height, index) in `order_by` direction before paging,
    - returns the requested page plus the total match count.
    """
    lifecycle = LocalNodeLifecycle(settings)
    node = await lifecycle.start()
    try:
        return to_jsonable(
            await node.tx_search(query, page=page, per_page=per_page, order_by=order_by)
        )
    finally:
        await lifecycle.stop()


async def consensus_state_task(*, settings: Settings) -> Any:
    lifecycle = LocalNodeLifecycle(settings)
    node = await lifecycle.start()
    try:
        return to_jsonable(await node.consensus_state())
    finally:
        await lifecycle.stop()


async def init_db_task(*, settings: Settings) -> Any:
    """Task: create the storage and indexer tables if they don't exist."""
    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite" and url.database:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_app_async_engine(settings)
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()
    return {"database_url": settings.database_url, "created": True}
