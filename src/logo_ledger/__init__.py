"""Vote ledger and Elo reconciliation engine for logo-design contests."""

__version__ = "0.1.0"
