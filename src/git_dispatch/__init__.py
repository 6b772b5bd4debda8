"""git-dispatch: split a source branch into stacked task branches and keep them in sync."""

from __future__ import annotations

__version__ = "0.4.0"


def main() -> None:
    """Console-script entry point."""
    from git_dispatch.cli import app

    app()


__all__ = ["__version__", "main"]
