"""Shared config-loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, TypeVar
import tomllib

T = TypeVar("T")


def load_toml_config(
    file_path: Path,
    parser: Callable[[dict[str, Any], Path], T],
) -> T:
    """Read one TOML file and hand the raw mapping to *parser*."""
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")
    if not file_path.is_file():
        raise IsADirectoryError(f"Config path is not a file: {file_path}")

    with file_path.open("rb") as file:
        raw = tomllib.load(file)
    return parser(raw, file_path)


__all__ = ["load_toml_config"]
