"""Read-only collaborator contracts consumed by the vote store."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from logo_ledger.domain.ratings.common import Contest, LogoEntry


@runtime_checkable
class LogoCatalog(Protocol):
    """Source of the active roster for a contest."""

    def active_logos(self, contest_id: str) -> Sequence[LogoEntry]: ...


@runtime_checkable
class ContestRegistry(Protocol):
    """Resolves an optional contest id to a known contest."""

    def resolve(self, contest_id: str | None = None) -> Contest: ...


@runtime_checkable
class Clock(Protocol):
    def __call__(self) -> int: ...


__all__ = ["Clock", "ContestRegistry", "LogoCatalog"]
