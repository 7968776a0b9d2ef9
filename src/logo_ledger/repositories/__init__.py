"""File-backed storage for ledgers, backups, audit events and rosters."""
