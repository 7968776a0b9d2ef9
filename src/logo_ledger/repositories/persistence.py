"""Crash-consistent JSON writes with throttled, retained backups."""

from __future__ import annotations

import json
import logging
import os
import re
import threading
import uuid
from collections.abc import Iterator
from contextlib import suppress
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from logo_ledger.exceptions import PersistenceError

LOGGER = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL_MS = 60_000
DEFAULT_MAX_RETAINED = 120

_LEGACY_ISO_STAMP = re.compile(r"^(\d{4}-\d{2}-\d{2})T(\d{2})-(\d{2})-(\d{2})-(\d{3})Z")

_file_locks: dict[str, threading.RLock] = {}
_file_locks_lock = threading.Lock()


def get_file_lock(path: Path) -> threading.RLock:
    """Per-path lock shared by every writer in this process."""
    key = os.path.normpath(os.path.abspath(path))
    with _file_locks_lock:
        lock = _file_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _file_locks[key] = lock
        return lock


def dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def atomic_write_text(path: Path, payload: str) -> None:
    atomic_write_bytes(path, payload.encode("utf-8"))


def atomic_write_bytes(path: Path, payload: bytes) -> None:
    """Replace *path* with *payload* so readers never observe a partial file.

    The temp file lives next to the destination so ``os.replace`` stays on one
    filesystem. Temp and destination are fsynced; a failed directory fsync is
    logged and ignored.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f"{path.name}.{uuid.uuid4()}.tmp")
    renamed = False
    try:
        with temp_path.open("wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())

        os.replace(temp_path, path)
        renamed = True

        with path.open("rb+") as handle:
            os.fsync(handle.fileno())
        _fsync_directory(path.parent)
    finally:
        if not renamed:
            with suppress(FileNotFoundError):
                temp_path.unlink()


def _fsync_directory(directory: Path) -> None:
    flag = getattr(os, "O_DIRECTORY", None)
    if flag is None:
        return
    try:
        fd = os.open(directory, os.O_RDONLY | flag)
    except OSError as exc:
        LOGGER.warning("Failed to open directory %s for fsync: %s", directory, exc)
        return
    try:
        os.fsync(fd)
    except OSError as exc:
        LOGGER.warning("Failed to fsync directory %s: %s", directory, exc)
    finally:
        os.close(fd)


def parse_backup_timestamp(file_name: str) -> int | None:
    """Epoch ms embedded in a backup file name.

    Understands ``<epochMillis>-<uuid>.json`` and the older
    ``YYYY-MM-DDTHH-MM-SS-mmmZ-...`` form.
    """
    base = file_name.split(".json", 1)[0]
    if "-" not in base:
        return None

    first_segment = base.split("-", 1)[0]
    if first_segment.isdigit() and len(first_segment) != 4:
        return int(first_segment)

    match = _LEGACY_ISO_STAMP.match(base)
    if match is not None:
        date_part, hours, minutes, seconds, millis = match.groups()
        try:
            moment = datetime.fromisoformat(f"{date_part}T{hours}:{minutes}:{seconds}.{millis}+00:00")
        except ValueError:
            return None
        return int(moment.astimezone(UTC).timestamp() * 1000)

    if first_segment.isdigit():
        return int(first_segment)
    return None


def list_backups(backup_dir: Path) -> list[tuple[int, Path]]:
    """Backups in *backup_dir*, newest first."""
    if not backup_dir.is_dir():
        return []
    found = [
        (parse_backup_timestamp(entry.name) or 0, entry)
        for entry in backup_dir.iterdir()
        if entry.is_file() and entry.name.endswith(".json")
    ]
    found.sort(key=lambda item: (item[0], item[1].name), reverse=True)
    return found


def prune_backups(backup_dir: Path, max_retained: int) -> list[Path]:
    """Delete all but the *max_retained* newest backups. ``0`` disables pruning."""
    if max_retained <= 0:
        return []
    removed: list[Path] = []
    for _, stale in list_backups(backup_dir)[max_retained:]:
        try:
            stale.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            LOGGER.warning("Failed to delete old backup %s: %s", stale, exc)
            continue
        removed.append(stale)
    if removed:
        LOGGER.debug("Pruned %d backups from %s", len(removed), backup_dir)
    return removed


class BackupThrottler:
    """Remembers when each backup prefix was last snapshotted.

    One instance is shared by every store in a process. The first time a
    prefix is seen its timestamp is seeded from the newest backup on disk so a
    restart does not immediately produce a fresh snapshot.
    """

    def __init__(self) -> None:
        self._last_backup_ms: dict[str, int] = {}
        self._lock = threading.Lock()

    def seed(self, prefix: str, backup_dir: Path) -> None:
        with self._lock:
            if prefix in self._last_backup_ms:
                return
            backups = list_backups(backup_dir)
            if backups and backups[0][0] > 0:
                self._last_backup_ms[prefix] = backups[0][0]

    def last_backup_ms(self, prefix: str) -> int | None:
        with self._lock:
            return self._last_backup_ms.get(prefix)

    def should_backup(self, prefix: str, now_ms: int, min_interval_ms: int, force: bool = False) -> bool:
        if force:
            return True
        with self._lock:
            last = self._last_backup_ms.get(prefix, 0)
        if last <= 0:
            return True
        return now_ms - last >= max(0, min_interval_ms)

    def record(self, prefix: str, now_ms: int) -> None:
        with self._lock:
            self._last_backup_ms[prefix] = now_ms


def backup_file(
    source: Path,
    *,
    backup_root: Path,
    prefix: str,
    throttler: BackupThrottler,
    now_ms: int,
    max_retained: int = DEFAULT_MAX_RETAINED,
) -> Path | None:
    """Unconditionally snapshot *source* into ``backup_root/prefix``.

    Returns ``None`` when *source* does not exist or the copy fails.
    """
    if not source.is_file():
        return None

    backup_dir = backup_root / prefix
    backup_dir.mkdir(parents=True, exist_ok=True)
    backup_path = backup_dir / f"{now_ms}-{uuid.uuid4()}.json"
    try:
        atomic_write_bytes(backup_path, source.read_bytes())
    except OSError as exc:
        LOGGER.warning("Failed to copy backup for %s: %s", source, exc)
        return None

    throttler.record(prefix, now_ms)
    prune_backups(backup_dir, max_retained)
    LOGGER.debug("Backed up %s to %s", source, backup_path)
    return backup_path


def write_json_with_backup(
    path: Path,
    data: Any,
    *,
    backup_root: Path,
    prefix: str,
    throttler: BackupThrottler,
    now_ms: int,
    min_interval_ms: int = DEFAULT_MIN_INTERVAL_MS,
    max_retained: int = DEFAULT_MAX_RETAINED,
    force_backup: bool = False,
) -> Path | None:
    """Atomically write *data* as JSON, then snapshot it unless throttled.

    Returns the backup path, or ``None`` when no backup was taken. Raises
    :class:`PersistenceError` when the primary write fails; the previous file
    is left intact in that case.
    """
    payload = dump_json(data)
    with get_file_lock(path):
        try:
            atomic_write_text(path, payload)
        except OSError as exc:
            raise PersistenceError(f"Failed to write JSON atomically to {path}: {exc}") from exc

        backup_dir = backup_root / prefix
        backup_dir.mkdir(parents=True, exist_ok=True)
        throttler.seed(prefix, backup_dir)

        if not throttler.should_backup(prefix, now_ms, min_interval_ms, force_backup):
            prune_backups(backup_dir, max_retained)
            return None

        return backup_file(
            path,
            backup_root=backup_root,
            prefix=prefix,
            throttler=throttler,
            now_ms=now_ms,
            max_retained=max_retained,
        )


def _readable_backups(backup_dir: Path) -> Iterator[tuple[Path, bytes]]:
    for _, candidate in list_backups(backup_dir):
        try:
            payload = candidate.read_bytes()
            json.loads(payload.decode("utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.warning("Skipping unreadable backup %s: %s", candidate, exc)
            continue
        yield candidate, payload


def read_latest_backup(backup_root: Path, prefix: str) -> tuple[Path, bytes] | None:
    """Newest backup that parses as JSON, without touching any other file."""
    return next(_readable_backups(backup_root / prefix), None)


def restore_latest_backup(backup_root: Path, prefix: str, destination: Path) -> bool:
    """Copy the newest readable backup over *destination*.

    A backup is only eligible when it parses as JSON. Returns ``False`` when
    nothing could be restored.
    """
    for candidate, payload in _readable_backups(backup_root / prefix):
        try:
            with get_file_lock(destination):
                atomic_write_bytes(destination, payload)
        except OSError as exc:
            LOGGER.warning("Failed to restore backup %s: %s", candidate, exc)
            continue

        LOGGER.warning("Restored %s from backup %s", destination, candidate)
        return True

    return False


__all__ = [
    "BackupThrottler",
    "DEFAULT_MAX_RETAINED",
    "DEFAULT_MIN_INTERVAL_MS",
    "atomic_write_bytes",
    "atomic_write_text",
    "backup_file",
    "dump_json",
    "get_file_lock",
    "list_backups",
    "parse_backup_timestamp",
    "prune_backups",
    "read_latest_backup",
    "restore_latest_backup",
    "write_json_with_backup",
]
