from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from src.hg import DEFAULT_TIMEOUT
from src.models import RepoList


@dataclass(frozen=True)
class RunConfig:
    repos_dir: str | None = None
    repo: str | None = None
    db_path: str | None = None
    workers: int = 1
    timeout: float = DEFAULT_TIMEOUT
    persist_retries: int = 3
    retry_delay: float = 0.5
    debug: bool = False
    hg_binary: str = "hg"
    strict: bool = False


def load_run_config(config_path: str | Path) -> RunConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config must be a mapping: {path}")

    known = {f.name for f in fields(RunConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config key(s) in {path}: {', '.join(unknown)}")

    return validate_config(RunConfig(**data))


def merge_overrides(config: RunConfig, **overrides: Any) -> RunConfig:
    changes = {key: value for key, value in overrides.items() if value is not None}
    return validate_config(replace(config, **changes))


def validate_config(config: RunConfig) -> RunConfig:
    for name in ("repos_dir", "repo", "db_path"):
        value = getattr(config, name)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{name} must be a string, got {value!r}")
    if not isinstance(config.hg_binary, str) or not config.hg_binary:
        raise ValueError(f"hg_binary must be a non-empty string, got {config.hg_binary!r}")
    for name in ("debug", "strict"):
        value = getattr(config, name)
        if not isinstance(value, bool):
            raise ValueError(f"{name} must be true or false, got {value!r}")

    try:
        workers = int(config.workers)
        timeout = float(config.timeout)
        retries = int(config.persist_retries)
        retry_delay = float(config.retry_delay)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid numeric config value: {exc}") from exc

    if workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}")
    if timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout}")
    if retries < 0:
        raise ValueError(f"persist_retries must not be negative, got {retries}")
    if retry_delay < 0:
        raise ValueError(f"retry_delay must not be negative, got {retry_delay}")

    return replace(
        config,
        workers=workers,
        timeout=timeout,
        persist_retries=retries,
        retry_delay=retry_delay,
    )


def build_repo_list(config: RunConfig) -> tuple[RepoList, int]:
    """Return the repositories to collect and the worker count to use.

    A parent directory wins over a single repository; a single repository is
    always collected with one worker.
    """
    if config.repos_dir:
        parent = Path(config.repos_dir)
        if not parent.is_dir():
            raise ValueError(f"Repository directory not found: {parent}")
        repos = tuple(str(child) for child in sorted(parent.iterdir()) if child.is_dir())
        if not repos:
            raise ValueError(f"no repos found in {parent}, aborting")
        return repos, config.workers

    if config.repo:
        return (config.repo,), 1

    raise ValueError("no repos specified, aborting")
