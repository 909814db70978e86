from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from .queries import (
    block_results_task,
    block_task,
    block_txs_task,
    consensus_state_task,
    genesis_task,
    latest_height_task,
    tx_search_task,
    tx_task,
    validators_task,
)

TaskFn = Callable[..., Awaitable[Any]]

TASKS: dict[str, TaskFn] = {
    "latest_height": latest_height_task,
    "genesis": genesis_task,
    "block": block_task,
    "block_results": block_results_task,
    "block_txs": block_txs_task,
    "validators": validators_task,
    "tx": tx_task,
    "tx_search": tx_search_task,
    "consensus_state": consensus_state_task,
}
