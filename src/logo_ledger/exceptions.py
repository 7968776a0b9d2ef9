"""Exception hierarchy shared across the ledger."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error raised by the vote ledger."""


class VoteValidationError(LedgerError, ValueError):
    """A vote or reset request was rejected before any state changed."""


class ContestNotFoundError(LedgerError, KeyError):
    """The contest registry has no contest with the requested id."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message for callers and CLIs.
        return str(self.args[0]) if self.args else super().__str__()


class PersistenceError(LedgerError, OSError):
    """Writing a ledger file failed; the previous file on disk is intact."""


class MergeError(LedgerError):
    """The offline merge could not produce a merged votes file."""


__all__ = [
    "ContestNotFoundError",
    "LedgerError",
    "MergeError",
    "PersistenceError",
    "VoteValidationError",
]
