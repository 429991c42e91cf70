from __future__ import annotations

import contextlib
import csv
import logging
import os
import tempfile

from . import logging_bridge
from .models import COLUMNS, PostingRecord

log = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """The persisted table cannot be used (unknown header, unreadable file)."""


class StoreMigrationError(StoreError):
    """Rewriting a legacy table to the current columns failed."""


# ---- Public API -------------------------------------------------------------


class DedupStore:
    """
    Append-only CSV table keyed by jobID.

    `load()` reads the known identifiers once; `contains()` answers from memory;
    `append()` writes and flushes one row, then records the identifier.
    A file whose header is an older subset of COLUMNS is rewritten in place
    (temp file + os.replace) with the missing columns left empty.
    """

    def __init__(self, path: str):
        self.path = path
        self._ids: set[str] = set()
        # Columns actually present in the file; differs from COLUMNS only
        # when a legacy file could not be migrated.
        self._columns: tuple[str, ...] = COLUMNS
        self._loaded = False

    @property
    def columns(self) -> tuple[str, ...]:
        return self._columns

    @property
    def degraded(self) -> bool:
        return self._columns != COLUMNS

    def load(self) -> set[str]:
        self._ids = set()
        self._columns = COLUMNS
        self._loaded = True

        if not os.path.exists(self.path) or os.path.getsize(self.path) == 0:
            return set(self._ids)

        header, rows = _read_table(self.path)
        if header == COLUMNS:
            self._ids = _ids_from(rows, header)
            return set(self._ids)

        if not _is_legacy_header(header):
            raise StoreError(f"{self.path}: unrecognized header {list(header)!r}; expected {list(COLUMNS)!r}")

        try:
            migrate(self.path, header, rows)
        except StoreMigrationError as e:
            log.warning("Store migration failed for %s; continuing with legacy columns: %s", self.path, e)
            logging_bridge.error({
                "component": "seek_harvest.store",
                "op": "store_migration_failed",
                "path": self.path,
                "from_columns": list(header),
                "error": repr(e),
            })
            self._columns = header
        else:
            logging_bridge.activity({
                "component": "seek_harvest.store",
                "op": "store_migrated",
                "path": self.path,
                "from_columns": list(header),
                "rows": len(rows),
            })

        self._ids = _ids_from(rows, header)
        return set(self._ids)

    def contains(self, job_id: str) -> bool:
        return job_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def append(self, record: PostingRecord) -> None:
        if not self._loaded:
            raise StoreError("DedupStore.append() called before load()")
        if record.job_id in self._ids:
            raise StoreError(f"jobID {record.job_id!r} already stored")

        _ensure_dir(self.path)
        row = record.to_row()
        needs_header = not os.path.exists(self.path) or os.path.getsize(self.path) == 0
        needs_break = not needs_header and not _ends_with_line_break(self.path)
        with open(self.path, "a", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            if needs_header:
                writer.writerow(self._columns)
            elif needs_break:
                f.write("\r\n")
            writer.writerow([row[c] for c in self._columns])
            f.flush()
            os.fsync(f.fileno())
        self._ids.add(record.job_id)


def migrate(path: str, header: tuple[str, ...], rows: list[list[str]]) -> None:
    """
    Rewrite `path` with COLUMNS as header; values are matched by column name
    and columns missing from `header` are written as empty strings.
    The original file is only replaced once the new one is fully on disk.
    """
    index = {name: i for i, name in enumerate(header)}
    directory = os.path.dirname(os.path.abspath(path)) or "."
    tmp_path = None
    try:
        fd, tmp_path = tempfile.mkstemp(prefix=".seek-migrate-", suffix=".csv", dir=directory)
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(COLUMNS)
            for row in rows:
                writer.writerow([row[index[c]] if c in index and index[c] < len(row) else "" for c in COLUMNS])
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as e:
        raise StoreMigrationError(f"could not migrate {path}: {e}") from e
    finally:
        if tmp_path is not None:
            with contextlib.suppress(FileNotFoundError):
                os.remove(tmp_path)


# ---- Nice-to-have helpers for tests & diagnostics --------------------------


def read_rows(path: str) -> list[dict[str, str]]:
    """Return every data row as a column -> value dict; [] if the file is missing."""
    if not os.path.exists(path) or os.path.getsize(path) == 0:
        return []
    header, rows = _read_table(path)
    return [dict(zip(header, row)) for row in rows]


def count_rows(path: str) -> int:
    return len(read_rows(path))


# ---- Internal utilities -----------------------------------------------------


def _ensure_dir(path: str) -> None:
    d = os.path.dirname(os.path.abspath(path)) or "."
    os.makedirs(d, exist_ok=True)


def _ends_with_line_break(path: str) -> bool:
    with open(path, "rb") as f:
        f.seek(-1, os.SEEK_END)
        return f.read(1) in (b"\n", b"\r")


def _read_table(path: str) -> tuple[tuple[str, ...], list[list[str]]]:
    try:
        with open(path, encoding="utf-8", newline="") as f:
            reader = csv.reader(f)
            header = tuple(next(reader, ()))
            rows = [row for row in reader if row]
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise StoreError(f"cannot read {path}: {e}") from e
    return header, rows


def _is_legacy_header(header: tuple[str, ...]) -> bool:
    return "jobID" in header and len(set(header)) == len(header) and set(header) < set(COLUMNS)


def _ids_from(rows: list[list[str]], header: tuple[str, ...]) -> set[str]:
    idx = header.index("jobID")
    return {row[idx] for row in rows if idx < len(row) and row[idx]}


__all__ = [
    "DedupStore",
    "StoreError",
    "StoreMigrationError",
    "count_rows",
    "migrate",
    "read_rows",
]
