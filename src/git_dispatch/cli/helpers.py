"""Shared CLI helpers: console, logging setup, repository lookup, error output."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler

from git_dispatch.core.config import DispatchConfig, load_config
from git_dispatch.core.errors import DispatchError
from git_dispatch.core.git_ops import find_repo_root, get_current_branch
from git_dispatch.core.stack import DispatchContext

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Route log records through rich; DEBUG with --verbose, WARNING otherwise."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True, show_time=True, show_path=True)],
    )
    logging.getLogger("git_dispatch").setLevel(level)


def fail(exc: DispatchError | str) -> NoReturn:
    """Print an error line and exit with status 1."""
    console.print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(1)


def get_repo_root_or_exit(path: Path | None = None) -> Path:
    repo_root = find_repo_root(path)
    if repo_root is None:
        fail("Not inside a git repository")
    return repo_root


def open_context() -> tuple[DispatchContext, DispatchConfig]:
    """Open the repository at the current directory with its configuration."""
    repo_root = get_repo_root_or_exit()
    ctx = DispatchContext.open(repo_root)
    try:
        config = load_config(repo_root, ctx.vcs)
    except DispatchError as exc:
        fail(exc)
    return ctx, config


def current_branch(ctx: DispatchContext) -> str | None:
    return get_current_branch(ctx.vcs.repo_root)


__all__ = [
    "console",
    "current_branch",
    "err_console",
    "fail",
    "get_repo_root_or_exit",
    "open_context",
    "setup_logging",
]
