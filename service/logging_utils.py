# service/logging_utils.py
from __future__ import annotations

import contextlib
import datetime as _dt
import json
import os
import socket
from collections.abc import Iterable
from typing import Any

# ---- Configuration (env-driven, read per call so tests can redirect) -------

_DEFAULT_LOG_DIR = "/app/local/logs"

# Keys/substrings whose values are scrubbed (case-insensitive, substring match)
_DEFAULT_REDACT_KEYS = {
    "api_key",
    "apikey",
    "authorization",
    "cookie",
    "password",
    "secret",
    "token",
    "x-goog-api-key",
}

_HOSTNAME = socket.gethostname()
_PID = os.getpid()


# ---- Public API --------------------------------------------------------------


def write_activity_log(record: dict[str, Any]) -> None:
    """
    Append one structured activity record to today's JSONL file.
    May raise on unrecoverable I/O/serialization errors; never mutates `record`.
    """
    _write_jsonl(_log_path_for_today(os.getenv("ACTIVITY_LOG_PREFIX", "activity")), record)


def write_error_log(record: dict[str, Any]) -> None:
    """Append one structured error record, parallel to the activity log."""
    _write_jsonl(_log_path_for_today(os.getenv("ERROR_LOG_PREFIX", "error")), record)


def get_activity_log_path() -> str:
    return _log_path_for_today(os.getenv("ACTIVITY_LOG_PREFIX", "activity"))


def redact(record: dict[str, Any], keys: set[str] | None = None) -> dict[str, Any]:
    """Redacted deep copy of `record`; values of matching keys and bearer tokens are scrubbed."""
    return _redact_deep(record, keys or _DEFAULT_REDACT_KEYS)


# ---- Internal helpers --------------------------------------------------------


def _log_path_for_today(prefix: str) -> str:
    log_dir = os.getenv("LOG_DIR", _DEFAULT_LOG_DIR)
    return os.path.join(log_dir, f"{prefix}-{_dt.date.today().isoformat()}.jsonl")


def _max_bytes() -> int:
    try:
        return int(os.getenv("ACTIVITY_LOG_MAX_BYTES", "0"))
    except ValueError:
        return 0


def _rotate_file_if_needed(path: str) -> None:
    """Size-based rotation on top of the per-day filenames; 0 disables it."""
    limit = _max_bytes()
    if limit <= 0:
        return
    try:
        if os.path.getsize(path) < limit:
            return
    except FileNotFoundError:
        return
    ts = _dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    with contextlib.suppress(FileNotFoundError):
        os.replace(path, f"{path}.{ts}")


def _safe_bearer_scrub(value: str) -> str:
    if "bearer " in value.lower():
        scheme = value.split(" ", 1)[0]
        return f"{scheme} ***REDACTED***"
    return value


def _key_matches(name: str, patterns: Iterable[str]) -> bool:
    n = name.lower()
    return any(pat in n for pat in patterns)


def _redact_deep(value: Any, patterns: Iterable[str]) -> Any:
    if isinstance(value, dict):
        return {
            k: "***REDACTED***" if isinstance(k, str) and _key_matches(k, patterns) else _redact_deep(v, patterns)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact_deep(v, patterns) for v in value)
    if isinstance(value, str):
        return _safe_bearer_scrub(value)
    return value


def _write_jsonl(path: str, record: dict[str, Any]) -> None:
    """
    Redact, stamp host/pid/ts, rotate by size if configured, then append one
    line with a single O_APPEND write. Retries once on OSError.
    """
    payload = dict(_redact_deep(record, _DEFAULT_REDACT_KEYS))
    payload.setdefault("ts", _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="seconds"))
    payload["_meta"] = {"host": _HOSTNAME, "pid": _PID}

    # Serialize first so errors surface before touching the file.
    data = (json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str) + "\n").encode("utf-8")

    def _append_once() -> None:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        _rotate_file_if_needed(path)
        fd = os.open(path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o644)
        try:
            os.write(fd, data)
        finally:
            os.close(fd)

    try:
        _append_once()
    except OSError:
        _append_once()
