"""CLI entry point for prtask.

Commands:
  analyze  turn a pull request's review comments into tasks
  status   show the current task, the next recommended task and counts
  update   change a task's status (validated against the workflow)
  thread   show whether a comment thread's tasks are all closed
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prtask_cli.commands.analyze import analyze_cmd
from prtask_cli.commands.status import status_cmd
from prtask_cli.commands.thread import thread_cmd
from prtask_cli.commands.update import update_cmd

console = Console()
logger = logging.getLogger(__name__)

# How long the CLI waits, at exit, for an update check still in flight.
_UPDATE_CHECK_GRACE_SECONDS = 0.2


def _current_version() -> str:
    try:
        return importlib.metadata.version("prtask")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _build_store(config: dict):
    """Instantiate the configured store from .prtask.yml settings.

    Store selection:
      store: json   → JsonFileStore (store_path or .pr-review)   [default]
      store: sqlite → SQLiteStore   (store_path or .prtask.db)
      store: memory → MemoryStore   (nothing persisted; dry runs)
    """
    store_type = config.get("store", "json")
    store_path = config.get("store_path")

    if store_type == "sqlite":
        from prtask_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=store_path or ".prtask.db")

    if store_type == "memory":
        from prtask_store.memory import MemoryStore

        return MemoryStore()

    if store_type != "json":
        console.print(f"[yellow]Unknown store {store_type!r}; using the JSON file store.[/yellow]")

    from prtask_store.jsonfile import JsonFileStore

    return JsonFileStore(root=store_path or ".pr-review")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )


def _start_update_check(ctx: click.Context, config: dict) -> None:
    from prtask_core.config import update_state_path
    from prtask_core.update_check import start_update_check

    try:
        check = start_update_check(_current_version(), config["update_check"], update_state_path(config))
    except Exception as e:
        logger.debug("Update check not started: %s", e)
        return
    if check is None:
        return

    def _finish():
        notification = check.wait(_UPDATE_CHECK_GRACE_SECONDS)
        if notification:
            console.print(f"\n[cyan]{notification}[/cyan]")

    ctx.call_on_close(_finish)


@click.group()
@click.version_option(version=_current_version(), prog_name="prtask")
@click.option(
    "--config",
    "config_path",
    default=".prtask.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRTASK_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Turn GitHub PR review comments into a prioritised task list."""
    from prtask_core.config import load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    try:
        config = load_config(config_path)
    except ValueError as e:
        raise click.UsageError(str(e))

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)
    _start_update_check(ctx, config)


main.add_command(analyze_cmd)
main.add_command(status_cmd)
main.add_command(update_cmd)
main.add_command(thread_cmd)
