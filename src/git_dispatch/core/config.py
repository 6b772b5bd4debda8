"""Project configuration for git-dispatch.

Values are layered, later sources win:

1. built-in defaults
2. ``.git-dispatch.yaml`` at the repository root
3. git config ``dispatch.*`` keys (``dispatch.base``, ``dispatch.remote``,
   ``dispatch.requireTaskId``, ``dispatch.carryTrailers``)

Command-line arguments override all of them; that happens in the CLI.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional, Protocol

import yaml

from git_dispatch.core.errors import DispatchError
from git_dispatch.core.git_ops import resolve_primary_branch

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".git-dispatch.yaml"

# git config key -> DispatchConfig field
GIT_CONFIG_KEYS = {
    "dispatch.base": "base",
    "dispatch.remote": "remote",
    "dispatch.requireTaskId": "require_task_id",
    "dispatch.carryTrailers": "carry_trailers",
}

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


class ConfigError(DispatchError):
    """The configuration file or a dispatch.* git config value is invalid."""


class _ConfigSource(Protocol):
    def config_get(self, key: str) -> str | None: ...


@dataclass
class DispatchConfig:
    """Resolved settings.

    Attributes:
        base: Default base branch for split and restack
        remote: Remote used by push
        require_task_id: commit-msg hook rejects commits without Task-Id
        carry_trailers: commit-msg hook copies Task-Id/Task-Order from HEAD
    """

    base: Optional[str] = None
    remote: str = "origin"
    require_task_id: bool = True
    carry_trailers: bool = True

    def resolved_base(self, repo_root: Path) -> str:
        """Configured base, or the repository's primary branch."""
        return self.base or resolve_primary_branch(repo_root)


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"{key} must be a boolean, got {value!r}")


def _apply(config: DispatchConfig, key: str, name: str, value: Any) -> None:
    if value is None:
        return
    if name in ("require_task_id", "carry_trailers"):
        setattr(config, name, _as_bool(key, value))
    else:
        setattr(config, name, str(value))


def _load_file(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return data


def load_config(repo_root: Path, git: _ConfigSource | None = None) -> DispatchConfig:
    """Build the effective configuration for ``repo_root``.

    Raises:
        ConfigError: invalid YAML, an unknown key, or a non-boolean flag
    """
    config = DispatchConfig()
    known = {f.name for f in fields(DispatchConfig)}

    path = Path(repo_root) / CONFIG_FILENAME
    if path.is_file():
        for key, value in _load_file(path).items():
            name = str(key).replace("-", "_")
            if name not in known:
                raise ConfigError(f"Unknown setting '{key}' in {path}")
            _apply(config, str(key), name, value)
        logger.debug("Loaded %s", path)

    if git is not None:
        for key, name in GIT_CONFIG_KEYS.items():
            _apply(config, key, name, git.config_get(key))

    return config


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "DispatchConfig",
    "GIT_CONFIG_KEYS",
    "load_config",
]
