from __future__ import annotations

import importlib.metadata
from pathlib import Path
from typing import NoReturn, Optional

import httpx
import typer

from ....core.config import AppConfig, load_config
from ....core.exceptions import ConfigError


def get_version() -> str:
    try:
        return importlib.metadata.version("device-relay")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def require_config(path: Optional[Path], config_file: Optional[Path] = None) -> AppConfig:
    try:
        return load_config(path or Path.cwd(), config_file)
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)


def post_json(url: str, payload: dict, *, timeout: float) -> httpx.Response:
    return httpx.post(url, json=payload, timeout=timeout, follow_redirects=True)
