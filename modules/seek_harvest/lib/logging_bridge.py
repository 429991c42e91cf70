from __future__ import annotations

import logging
from typing import Any

# Prefer the service JSONL writer; stdlib logging otherwise. Silent on import.
try:
    from service import logging_utils as _logging_backend  # type: ignore
except Exception:
    _logging_backend = None

_REDACT_KEYS = {
    "api_key",
    "apikey",
    "authorization",
    "bearer",
    "password",
    "secret",
    "token",
}


def _redact_record(record: dict[str, Any]) -> dict[str, Any]:
    """Shallow-copy record and scrub secret-like keys at top level."""
    out = dict(record)
    for k in list(out.keys()):
        lk = str(k).lower()
        if lk in _REDACT_KEYS or lk.endswith("_secret") or lk.endswith("_key"):
            out[k] = "***REDACTED***"
    return out


def activity(record: dict[str, Any]) -> None:
    """Write an activity record to the service JSONL log, else stdlib info."""
    payload = _redact_record(record)
    if _logging_backend is not None:
        try:
            _logging_backend.write_activity_log(payload)
            return
        except Exception:
            logging.getLogger("seek_harvest.activity").debug("activity sink failed", exc_info=True)
    logging.getLogger("seek_harvest.activity").info(payload)


def error(record: dict[str, Any]) -> None:
    """Write an error record to the service JSONL log, else stdlib error."""
    payload = _redact_record(record)
    if _logging_backend is not None:
        try:
            _logging_backend.write_error_log(payload)
            return
        except Exception:
            logging.getLogger("seek_harvest.error").debug("error sink failed", exc_info=True)
    logging.getLogger("seek_harvest.error").error(payload)
