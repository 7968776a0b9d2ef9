"""Read-only, file-backed logo catalog and contest registry."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from logo_ledger.domain.ratings.common import DEFAULT_CONTEST_ID, Contest, LogoEntry
from logo_ledger.exceptions import ContestNotFoundError

LOGGER = logging.getLogger(__name__)

CONTEST_STATUSES = ("draft", "upcoming", "active", "archived")


def parse_logos_document(data: Any, source: str) -> list[LogoEntry]:
    """Decode ``{"version": ..., "logos": [...]}``; rows without an id are skipped."""
    if not isinstance(data, dict) or not isinstance(data.get("logos"), list):
        raise ValueError(f"{source}: invalid logos file shape")

    logos: list[LogoEntry] = []
    for raw in data["logos"]:
        logo = _coerce_logo(raw)
        if logo is None:
            LOGGER.warning("%s: skipping malformed logo record %r", source, raw)
            continue
        logos.append(logo)
    return logos


def load_logos_file(path: Path) -> list[LogoEntry]:
    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    return parse_logos_document(data, str(path))


def group_active_logos(logos: list[LogoEntry]) -> dict[str, list[LogoEntry]]:
    grouped: dict[str, list[LogoEntry]] = {}
    for logo in logos:
        if logo.is_active:
            grouped.setdefault(logo.contest_id, []).append(logo)
    return grouped


def _coerce_logo(raw: Any) -> LogoEntry | None:
    if not isinstance(raw, dict):
        return None
    logo_id = raw.get("id")
    if not isinstance(logo_id, str) or not logo_id.strip():
        return None

    contest_id = raw.get("contestId")
    if not isinstance(contest_id, str) or not contest_id.strip():
        contest_id = DEFAULT_CONTEST_ID
    removed_at = raw.get("removedAt")
    if not isinstance(removed_at, str) or not removed_at.strip():
        removed_at = None

    return LogoEntry(
        id=logo_id.strip(),
        contest_id=contest_id.strip(),
        name=_text(raw.get("name")),
        codename=_text(raw.get("codename")),
        image=_text(raw.get("image")),
        removed_at=removed_at,
    )


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class JsonLogoCatalog:
    """Reads ``logos.json`` on every call so roster edits are picked up."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def all_logos(self) -> list[LogoEntry]:
        if not self.path.exists():
            return []
        try:
            return load_logos_file(self.path)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Failed to read logos file %s: %s", self.path, exc)
            return []

    def active_logos(self, contest_id: str) -> list[LogoEntry]:
        return [logo for logo in self.all_logos() if logo.contest_id == contest_id and logo.is_active]


class JsonContestRegistry:
    """Resolves contest ids against ``contests.json``.

    Without a readable registry file there is exactly one contest, the default.
    """

    def __init__(self, path: Path, default_contest_id: str = DEFAULT_CONTEST_ID) -> None:
        self.path = path
        self.default_contest_id = default_contest_id

    def _read(self) -> tuple[str, list[Contest]]:
        default = Contest(
            id=self.default_contest_id,
            slug=self.default_contest_id,
            title=self.default_contest_id,
            status="active",
        )
        if not self.path.exists():
            return default.id, [default]

        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError) as exc:
            LOGGER.warning("Failed to read contests registry %s: %s", self.path, exc)
            return default.id, [default]

        contests_raw = data.get("contests") if isinstance(data, dict) else None
        active_id = data.get("activeContestId") if isinstance(data, dict) else None
        if not isinstance(contests_raw, list) or not contests_raw or not isinstance(active_id, str):
            return default.id, [default]

        contests = [contest for contest in map(_coerce_contest, contests_raw) if contest is not None]
        return active_id, contests

    def contests(self) -> list[Contest]:
        return self._read()[1]

    def active_contest_id(self) -> str:
        return self._read()[0]

    def resolve(self, contest_id: str | None = None) -> Contest:
        active_id, contests = self._read()
        target = (contest_id or "").strip() or active_id
        for contest in contests:
            if contest.id == target:
                return contest
        raise ContestNotFoundError(f"Contest {target} not found.")


def _coerce_contest(raw: Any) -> Contest | None:
    if not isinstance(raw, dict):
        return None
    slug = _text(raw.get("slug")) or _text(raw.get("id"))
    contest_id = _text(raw.get("id")) or slug
    if not contest_id:
        return None
    status = raw.get("status")
    return Contest(
        id=contest_id,
        slug=slug or contest_id,
        title=_text(raw.get("title")) or contest_id,
        status=status if status in CONTEST_STATUSES else "draft",
    )


__all__ = [
    "JsonContestRegistry",
    "JsonLogoCatalog",
    "group_active_logos",
    "load_logos_file",
    "parse_logos_document",
]
