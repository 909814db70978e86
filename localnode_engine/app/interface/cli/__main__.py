import asyncio
import inspect
import json
import logging
from typing import Any, Optional

import typer
from dotenv import load_dotenv
from InquirerPy import inquirer

from localnode_engine.app.config import Settings
from localnode_engine.app.domain.errors import NodeQueryError
from localnode_engine.app.interface.tasks import TASKS, TaskFn
from localnode_engine.app.interface.tasks.queries import init_db_task


load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

app = typer.Typer()
node_app = typer.Typer(help="cli for querying a local node's storage and indexers.")
app.add_typer(node_app, name="node")


def _execute(task: TaskFn, **kwargs: Any) -> None:
    settings = Settings()
    try:
        result = asyncio.run(task(settings=settings, **kwargs))
    except NodeQueryError as err:
        typer.echo(f"error: {err}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(result, indent=2))


@node_app.command("height")
def height() -> None:
    _execute(TASKS["latest_height"])


@node_app.command("genesis")
def genesis() -> None:
    _execute(TASKS["genesis"])


@node_app.command("block")
def block(height: Optional[int] = typer.Argument(None, help="Height (latest when omitted).")) -> None:
    _execute(TASKS["block"], height=height)


@node_app.command("block-results")
def block_results(height: Optional[int] = typer.Argument(None)) -> None:
    _execute(TASKS["block_results"], height=height)


@node_app.command("block-txs")
def block_txs(height: Optional[int] = typer.Argument(None)) -> None:
    _execute(TASKS["block_txs"], height=height)


@node_app.command("validators")
def validators(height: Optional[int] = typer.Argument(None)) -> None:
    _execute(TASKS["validators"], height=height)


@node_app.command("tx")
def tx(hash: str = typer.Argument(..., help="Transaction hash, hex encoded.")) -> None:
    _execute(TASKS["tx"], hash=hash)


@node_app.command("search")
def search(
    query: str = typer.Argument(..., help="e.g. \"message.sender = 'addr' AND tx.height > 5\""),
    page: Optional[int] = typer.Option(None, "--page"),
    per_page: Optional[int] = typer.Option(None, "--per-page"),
    order_by: str = typer.Option("", "--order-by", help="asc, desc or empty"),
) -> None:
    _execute(TASKS["tx_search"], query=query, page=page, per_page=per_page, order_by=order_by)


@node_app.command("consensus-state")
def consensus_state() -> None:
    _execute(TASKS["consensus_state"])


@node_app.command("init-db")
def init_db() -> None:
    _execute(init_db_task)


def _optional_int(raw: str) -> int | None:
    return int(raw) if raw.strip() else None


@node_app.command("run")
def run() -> None:
    task_name = inquirer.select(
        message="Select query:",
        choices=list(TASKS.keys()),
        pointer="❯",
        instruction="Use ↑/↓ to move, Enter to select",
    ).execute()

    task = TASKS[task_name]
    params = inspect.signature(task).parameters
    kwargs: dict[str, object] = {}

    if "height" in params:
        kwargs["height"] = _optional_int(
            inquirer.text(message="Height (empty = latest):", default="").execute()
        )
    if "hash" in params:
        kwargs["hash"] = inquirer.text(message="Tx hash (hex):").execute()
    if "query" in params:
        kwargs["query"] = inquirer.text(
            message="Query:",
            default="tm.event = 'Tx'",
        ).execute()
    if "page" in params:
        kwargs["page"] = _optional_int(
            inquirer.text(message="Page (empty = 1):", default="").execute()
        )
    if "per_page" in params:
        kwargs["per_page"] = _optional_int(
            inquirer.text(message="Per page (empty = 30):", default="").execute()
        )
    if "order_by" in params:
        kwargs["order_by"] = inquirer.select(
            message="Order by:",
            choices=["asc", "desc"],
            default="asc",
        ).execute()

    _execute(task, **kwargs)


if __name__ == "__main__":
    typer.echo("\n  --- Local Node Query CLI ---\n")
    app()
