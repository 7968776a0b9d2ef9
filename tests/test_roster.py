from __future__ import annotations

from pathlib import Path

import pytest

from conftest import CONTEST_ID, logo_record, write_contests, write_logos
from logo_ledger.domain.protocol import ContestRegistry, LogoCatalog
from logo_ledger.exceptions import ContestNotFoundError
from logo_ledger.repositories.roster import JsonContestRegistry, JsonLogoCatalog, group_active_logos


def test_catalog_returns_active_logos_for_one_contest(tmp_path: Path) -> None:
    write_logos(
        tmp_path,
        [
            logo_record("logo-1", "Alpha"),
            logo_record("logo-2", "Bravo", removedAt="2024-01-05T00:00:00.000Z"),
            logo_record("logo-3", "Charlie", contest_id="other"),
            {"name": "no id"},
        ],
    )
    catalog = JsonLogoCatalog(tmp_path / "logos.json")

    assert isinstance(catalog, LogoCatalog)
    assert [logo.id for logo in catalog.active_logos(CONTEST_ID)] == ["logo-1"]
    assert len(catalog.all_logos()) == 3
    assert set(group_active_logos(catalog.all_logos())) == {CONTEST_ID, "other"}


def test_catalog_tolerates_missing_and_broken_files(tmp_path: Path) -> None:
    assert JsonLogoCatalog(tmp_path / "absent.json").active_logos(CONTEST_ID) == []

    (tmp_path / "logos.json").write_text('{"logos": "nope"}')
    assert JsonLogoCatalog(tmp_path / "logos.json").active_logos(CONTEST_ID) == []


def test_logos_without_contest_belong_to_default_contest(tmp_path: Path) -> None:
    write_logos(tmp_path, [{"id": "legacy-logo", "name": "Old"}])

    [logo] = JsonLogoCatalog(tmp_path / "logos.json").active_logos("badge-arena")

    assert logo.name == "Old"
    assert logo.codename == ""


def test_registry_resolves_active_and_named_contests(tmp_path: Path) -> None:
    write_contests(tmp_path, (CONTEST_ID, "spring-cup"), active="spring-cup")
    registry = JsonContestRegistry(tmp_path / "contests.json")

    assert isinstance(registry, ContestRegistry)
    assert registry.active_contest_id() == "spring-cup"
    assert registry.resolve().id == "spring-cup"
    assert registry.resolve(f"  {CONTEST_ID} ").id == CONTEST_ID
    assert [contest.id for contest in registry.contests()] == [CONTEST_ID, "spring-cup"]


def test_registry_rejects_unknown_contest(tmp_path: Path) -> None:
    write_contests(tmp_path)

    with pytest.raises(ContestNotFoundError) as excinfo:
        JsonContestRegistry(tmp_path / "contests.json").resolve("nope")

    assert str(excinfo.value) == "Contest nope not found."


def test_registry_without_file_has_only_the_default_contest(tmp_path: Path) -> None:
    registry = JsonContestRegistry(tmp_path / "contests.json", default_contest_id="fallback")

    assert registry.resolve().id == "fallback"
    with pytest.raises(ContestNotFoundError):
        registry.resolve(CONTEST_ID)
