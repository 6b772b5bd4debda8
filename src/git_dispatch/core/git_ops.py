"""Git and subprocess helpers shared by the core and the CLI."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Mapping, Sequence

logger = logging.getLogger(__name__)


def run_command(
    cmd: Sequence[str],
    *,
    check_return: bool = True,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    input_text: str | None = None,
    strip: bool = True,
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr).

    Output is always captured. Trailing whitespace is stripped from stdout and
    stderr, leading whitespace is kept since some git output (porcelain
    status, cherry markers) is column-sensitive.

    Args:
        cmd: Command to run
        check_return: If True, raise on non-zero exit
        cwd: Working directory for command execution
        env: Full environment for the child process (inherits when None)
        input_text: Text fed to stdin
        strip: If False, return stdout untouched (patch text needs its newlines)

    Returns:
        Tuple of (returncode, stdout, stderr)

    Raises:
        subprocess.CalledProcessError: when check_return is set and the
            command exits non-zero
    """
    logger.debug("run: %s (cwd=%s)", " ".join(cmd), cwd or ".")
    result = subprocess.run(
        list(cmd),
        check=False,
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        cwd=str(cwd) if cwd else None,
        env=dict(env) if env is not None else None,
        input=input_text,
    )
    stdout = (result.stdout or "").rstrip() if strip else (result.stdout or "")
    stderr = (result.stderr or "").strip()
    if check_return and result.returncode != 0:
        logger.debug("exit %s: %s", result.returncode, stderr)
        raise subprocess.CalledProcessError(
            result.returncode, list(cmd), output=stdout, stderr=stderr
        )
    return result.returncode, stdout, stderr


def find_repo_root(path: Path | None = None) -> Path | None:
    """Return the work-tree root containing ``path``, or None outside a repo."""
    try:
        code, stdout, _ = run_command(
            ["git", "rev-parse", "--show-toplevel"],
            check_return=False,
            cwd=(path or Path.cwd()).resolve(),
        )
    except (FileNotFoundError, NotADirectoryError):
        return None
    top = stdout.strip()
    return Path(top) if code == 0 and top else None


def get_current_branch(path: Path | None = None) -> str | None:
    """Return the checked-out branch, or None on a detached HEAD or outside a repo."""
    try:
        code, stdout, _ = run_command(
            ["git", "branch", "--show-current"],
            check_return=False,
            cwd=(path or Path.cwd()).resolve(),
        )
    except FileNotFoundError:
        return None
    if code != 0:
        return None
    return stdout.strip() or None


def resolve_primary_branch(repo_root: Path) -> str:
    """Default stack base: ``origin/HEAD``, else main, master or develop."""
    code, stdout, _ = run_command(
        ["git", "symbolic-ref", "--short", "refs/remotes/origin/HEAD"],
        check_return=False,
        cwd=repo_root,
    )
    if code == 0 and stdout.strip():
        return stdout.strip().split("/", 1)[-1]

    for branch in ("main", "master", "develop"):
        code, _, _ = run_command(
            ["git", "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"],
            check_return=False,
            cwd=repo_root,
        )
        if code == 0:
            return branch
    return "main"


__all__ = [
    "find_repo_root",
    "get_current_branch",
    "resolve_primary_branch",
    "run_command",
]
