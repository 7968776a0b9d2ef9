"""Load ledger settings from a TOML file."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from logo_ledger.domain.config_base import load_toml_config
from logo_ledger.domain.ratings.common import DEFAULT_CONTEST_ID, HISTORY_LIMIT
from logo_ledger.domain.ratings.elo.calculator import EloParameters
from logo_ledger.domain.ratings.elo.config import elo_parameters_as_json, parse_elo_parameters

DATA_DIR_ENV = "DATA_DIR"
DEFAULT_DATA_DIR = Path("server/runtime-data")
DEFAULT_VOTES_MIN_INTERVAL_MS = 15_000
DEFAULT_MAX_RETAINED = 120


@dataclass(frozen=True)
class BackupSettings:
    min_interval_ms: int = DEFAULT_VOTES_MIN_INTERVAL_MS
    max_retained: int = DEFAULT_MAX_RETAINED


@dataclass(frozen=True)
class LedgerConfig:
    """Everything a :class:`VoteStore` needs besides its collaborators."""

    data_dir: Path = DEFAULT_DATA_DIR
    default_contest_id: str = DEFAULT_CONTEST_ID
    history_limit: int = HISTORY_LIMIT
    leaderboard_size: int = 5
    elo: EloParameters = field(default_factory=EloParameters)
    backups: BackupSettings = field(default_factory=BackupSettings)
    file_path: Path | None = None

    @property
    def votes_path(self) -> Path:
        return self.data_dir / "votes.json"

    @property
    def events_path(self) -> Path:
        return self.data_dir / "vote-events.ndjson"

    @property
    def logos_path(self) -> Path:
        return self.data_dir / "logos.json"

    @property
    def contests_path(self) -> Path:
        return self.data_dir / "contests.json"

    @property
    def backup_root(self) -> Path:
        return self.data_dir / "backups"

    def as_config_json(self) -> dict[str, Any]:
        return {
            "data_dir": str(self.data_dir),
            "default_contest_id": self.default_contest_id,
            "history_limit": self.history_limit,
            "leaderboard_size": self.leaderboard_size,
            "elo": elo_parameters_as_json(self.elo),
            "backups": {
                "min_interval_ms": self.backups.min_interval_ms,
                "max_retained": self.backups.max_retained,
            },
        }


def load_ledger_config(file_path: Path | None = None) -> LedgerConfig:
    """Load config from *file_path*, or defaults when no file is given.

    The ``DATA_DIR`` environment variable overrides ``[ledger].data_dir``.
    """
    if file_path is None:
        config = LedgerConfig()
    else:
        config = load_toml_config(file_path, _parse_ledger_config)

    env_data_dir = os.environ.get(DATA_DIR_ENV, "").strip()
    if env_data_dir:
        config = replace(config, data_dir=Path(env_data_dir).resolve())
    return config


def _parse_ledger_config(raw: dict[str, Any], file_path: Path) -> LedgerConfig:
    ledger_raw = raw.get("ledger", {})
    backups_raw = raw.get("backups", {})

    data_dir_value = str(ledger_raw.get("data_dir", DEFAULT_DATA_DIR)).strip()
    if not data_dir_value:
        raise ValueError(f"{file_path}: [ledger].data_dir must not be empty")
    data_dir = Path(data_dir_value)
    if not data_dir.is_absolute():
        data_dir = (file_path.parent / data_dir).resolve()

    default_contest_id = str(ledger_raw.get("default_contest_id", DEFAULT_CONTEST_ID)).strip()
    if not default_contest_id:
        raise ValueError(f"{file_path}: [ledger].default_contest_id must not be empty")

    history_limit = int(ledger_raw.get("history_limit", HISTORY_LIMIT))
    if history_limit <= 0:
        raise ValueError(f"{file_path}: [ledger].history_limit must be > 0")

    leaderboard_size = int(ledger_raw.get("leaderboard_size", 5))
    if leaderboard_size <= 0:
        raise ValueError(f"{file_path}: [ledger].leaderboard_size must be > 0")

    backups = BackupSettings(
        min_interval_ms=int(backups_raw.get("min_interval_ms", DEFAULT_VOTES_MIN_INTERVAL_MS)),
        max_retained=int(backups_raw.get("max_retained", DEFAULT_MAX_RETAINED)),
    )
    if backups.min_interval_ms < 0:
        raise ValueError(f"{file_path}: [backups].min_interval_ms must be >= 0")
    if backups.max_retained < 0:
        raise ValueError(f"{file_path}: [backups].max_retained must be >= 0")

    return LedgerConfig(
        data_dir=data_dir,
        default_contest_id=default_contest_id,
        history_limit=history_limit,
        leaderboard_size=leaderboard_size,
        elo=parse_elo_parameters(raw, file_path),
        backups=backups,
        file_path=file_path,
    )


__all__ = [
    "BackupSettings",
    "DATA_DIR_ENV",
    "DEFAULT_MAX_RETAINED",
    "LedgerConfig",
    "load_ledger_config",
]
