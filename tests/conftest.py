"""Shared fixtures: a temp data directory with a two-logo roster and a fake clock."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from logo_ledger.config import BackupSettings, LedgerConfig
from logo_ledger.repositories.persistence import BackupThrottler
from logo_ledger.repositories.roster import JsonContestRegistry, JsonLogoCatalog
from logo_ledger.repositories.vote_store import VoteStore

CONTEST_ID = "test-contest"
START_MS = 1_704_067_200_000  # 2024-01-01T00:00:00Z


class FakeClock:
    def __init__(self, now_ms: int = START_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, delta_ms: int) -> None:
        self.now_ms += delta_ms


def logo_record(logo_id: str, name: str, contest_id: str = CONTEST_ID, **extra: Any) -> dict[str, Any]:
    record = {
        "id": logo_id,
        "contestId": contest_id,
        "name": name,
        "codename": name.lower(),
        "image": f"/logos/{logo_id}.png",
        "removedAt": None,
    }
    record.update(extra)
    return record


def write_logos(data_dir: Path, logos: list[dict[str, Any]]) -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "logos.json").write_text(json.dumps({"version": 3, "logos": logos}, indent=2) + "\n")


def write_contests(data_dir: Path, contest_ids: tuple[str, ...] = (CONTEST_ID,), active: str = CONTEST_ID) -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    contests = [{"id": contest_id, "slug": contest_id, "title": contest_id, "status": "active"} for contest_id in contest_ids]
    (data_dir / "contests.json").write_text(
        json.dumps({"version": 1, "activeContestId": active, "contests": contests}, indent=2) + "\n"
    )


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def backup_files(data_dir: Path) -> list[Path]:
    backup_dir = data_dir / "backups" / "votes"
    if not backup_dir.is_dir():
        return []
    return sorted(backup_dir.glob("*.json"))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "runtime-data"
    write_logos(directory, [logo_record("logo-1", "Alpha"), logo_record("logo-2", "Bravo")])
    write_contests(directory)
    return directory


@pytest.fixture
def make_store(clock: FakeClock) -> Callable[..., VoteStore]:
    def factory(
        directory: Path,
        *,
        throttler: BackupThrottler | None = None,
        min_interval_ms: int = 15_000,
        max_retained: int = 120,
        default_contest_id: str = "badge-arena",
    ) -> VoteStore:
        config = LedgerConfig(
            data_dir=directory,
            default_contest_id=default_contest_id,
            backups=BackupSettings(min_interval_ms=min_interval_ms, max_retained=max_retained),
        )
        return VoteStore(
            directory,
            catalog=JsonLogoCatalog(directory / "logos.json"),
            registry=JsonContestRegistry(directory / "contests.json", default_contest_id),
            config=config,
            clock=clock,
            throttler=throttler or BackupThrottler(),
        )

    return factory


@pytest.fixture
def store(data_dir: Path, make_store: Callable[..., VoteStore]) -> VoteStore:
    return make_store(data_dir)
