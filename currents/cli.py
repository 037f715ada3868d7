"""Command line interface for currents.

Inspect and drain the local sync queue, browse locally stored threads, and
run the store proxy service.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import cyclopts
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from currents.config import LOG_FORMAT, Settings
from currents.remote.base import UnconfiguredStore
from currents.session import ChatSession

app = cyclopts.App(name="currents", help="Branching chat sync tools")
queue_app = cyclopts.App(name="queue", help="Inspect and drain pending remote writes")
threads_app = cyclopts.App(name="threads", help="Browse locally stored threads")
app.command(queue_app)
app.command(threads_app)


def _get_console() -> Console:
    """Get a Rich console for output."""
    return Console()


def _settings(data_dir: Path | None) -> Settings:
    settings = Settings()
    if data_dir is not None:
        settings = settings.model_copy(update={"data_dir": data_dir})
    return settings


def _open_local(settings: Settings) -> ChatSession:
    """Open the session for a read-only command without an HTTP client."""
    return ChatSession.open(settings, remote=UnconfiguredStore())


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)


DataDir = Annotated[
    Optional[Path], cyclopts.Parameter(help="Directory holding local sync state")
]


@queue_app.command
def status(*, data_dir: DataDir = None):
    """Show queue depth, dead letters and the operation at the head.

    Example:
        currents queue status
    """
    console = _get_console()
    settings = _settings(data_dir)
    session = _open_local(settings)
    info = session.status()

    table = Table(title="Sync Queue Status", show_header=False, box=None)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    table.add_row("Remote", settings.remote_url or "not configured")
    table.add_row("Pending operations", str(info["pending"]))
    table.add_row("Dead letters", str(info["dead_letters"]))
    table.add_row("Threads", str(info["threads"]))
    table.add_row("Messages", str(info["messages"]))
    if info["head"]:
        head = info["head"]
        table.add_row(
            "Head operation",
            f"{head['type']} ({head['id']}, {head['attempts']} failed attempts)",
        )
    console.print(table)


@queue_app.command(name="list")
def list_operations(
    *,
    data_dir: DataDir = None,
    dead: Annotated[bool, cyclopts.Parameter(help="List dead letters instead")] = False,
    verbose: Annotated[bool, cyclopts.Parameter(help="Show payloads")] = False,
):
    """List pending operations in execution order.

    Example:
        currents queue list --verbose
    """
    console = _get_console()
    session = _open_local(_settings(data_dir))
    log = session.executor.dead_letters if dead else session.executor.log

    ops = list(log) if log is not None else []
    if not ops:
        console.print("[green]No operations queued[/green]")
        return

    table = Table(title="Dead Letters" if dead else "Pending Operations")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Operation id")
    table.add_column("Attempts", justify="right")
    if verbose:
        table.add_column("Payload", overflow="fold")

    for index, op in enumerate(ops, start=1):
        row = [str(index), op.type.value, op.id, str(op.attempts)]
        if verbose:
            row.append(json.dumps(op.payload, sort_keys=True))
        table.add_row(*row)
    console.print(table)


@queue_app.command
def drain(*, data_dir: DataDir = None):
    """Write queued operations to the remote store.

    Probes the store first; nothing is sent while it is unreachable.

    Example:
        currents queue drain
    """
    console = _get_console()
    settings = _settings(data_dir)
    _configure_logging(settings)

    async def _run():
        async with ChatSession.open(settings) as session:
            if not await session.refresh_connectivity():
                console.print("[yellow]Remote store unreachable; queue left intact[/yellow]")
                return None
            return await session.drain()

    result = asyncio.run(_run())
    if result is None:
        return 1

    console.print(f"[green]✓ Applied {len(result.succeeded)} operations[/green]")
    if result.dead_lettered:
        console.print(f"[red]Moved {len(result.dead_lettered)} to dead letters[/red]")
    if result.failed:
        console.print(
            f"[yellow]Stopped at {result.failed.type.value} ({result.failed.id}); "
            f"{result.remaining} still pending[/yellow]"
        )
        return 1
    return 0


@queue_app.command(name="retry-dead")
def retry_dead(*, data_dir: DataDir = None):
    """Move dead-lettered operations back onto the live queue.

    Example:
        currents queue retry-dead
    """
    console = _get_console()
    session = _open_local(_settings(data_dir))
    count = session.executor.requeue_dead_letters()
    console.print(f"[green]Requeued {count} operations[/green]")


@threads_app.command(name="list")
def list_threads(*, data_dir: DataDir = None):
    """List threads from the local snapshot.

    Example:
        currents threads list
    """
    console = _get_console()
    session = _open_local(_settings(data_dir))
    threads = session.tree.registry.list_threads()
    if not threads:
        console.print("[yellow]No threads stored locally[/yellow]")
        return

    table = Table(title="Threads")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Active messages", justify="right")
    table.add_column("Created")
    for thread in threads:
        chain = session.tree.get_message_chain(thread.leaf_message_id)
        table.add_row(
            thread.id,
            thread.title,
            str(len(chain)),
            thread.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@threads_app.command
def show(
    thread_id: Annotated[str, cyclopts.Parameter(help="Thread to display")],
    *,
    data_dir: DataDir = None,
    all_branches: Annotated[
        bool, cyclopts.Parameter(help="Show every branch, not only the active path")
    ] = False,
):
    """Print a thread's active conversation, or its whole branch tree.

    Example:
        currents threads show 3f2c... --all-branches
    """
    console = _get_console()
    session = _open_local(_settings(data_dir))
    tree = session.tree
    thread = tree.get_thread(thread_id)
    if thread is None:
        console.print(f"[red]Thread not found: {thread_id}[/red]")
        return 1

    if not all_branches:
        for message in tree.get_active_chain(thread_id):
            console.print(f"[bold cyan]{message.role.value}[/bold cyan]: {message.content}")
        return 0

    active = {m.id for m in tree.get_active_chain(thread_id)}
    root = Tree(f"[bold]{thread.title}[/bold]")
    stack = [(root, mid) for mid in reversed(thread.root_children)]
    while stack:
        parent_node, mid = stack.pop()
        message = tree.messages[mid]
        marker = "[green]●[/green] " if mid in active else ""
        preview = message.content.replace("\n", " ")[:60]
        node = parent_node.add(f"{marker}{message.role.value}: {preview}")
        stack.extend((node, child) for child in reversed(message.children))
    console.print(root)
    return 0


@app.command
def serve(
    *,
    host: Annotated[Optional[str], cyclopts.Parameter(help="Host to bind to")] = None,
    port: Annotated[Optional[int], cyclopts.Parameter(help="Port to listen on")] = None,
    database_url: Annotated[
        Optional[str], cyclopts.Parameter(help="SQLAlchemy database URL")
    ] = None,
):
    """Run the store proxy service.

    Example:
        currents serve --port 8000 --database-url sqlite:///./store.db
    """
    import uvicorn

    from currents.store_proxy.app import create_app

    settings = Settings()
    overrides = {
        key: value
        for key, value in {
            "host": host,
            "port": port,
            "database_url": database_url,
        }.items()
        if value is not None
    }
    if overrides:
        settings = settings.model_copy(update=overrides)
    _configure_logging(settings)

    print(f"Starting store proxy on {settings.host}:{settings.port}")
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


def main():
    load_dotenv()
    app()
