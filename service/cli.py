# service/cli.py
"""
Command-line entrypoints for the crawler.

Subcommands
-----------
run [--kwargs k=v ...]
    - One incremental crawl via modules.seek_harvest.main.run(...)
    - Prints the number of newly stored postings

migrate [--kwargs k=v ...]
    - Loads the store, upgrading a legacy header in place; no network, no key

serve [--interval-minutes N | --cron "m h dom mon dow"] [--kwargs k=v ...]
    - Re-runs the crawl on an APScheduler trigger until SIGINT/SIGTERM

Exit codes: 0 ok, 1 runtime failure, 2 configuration error, 130 interrupted.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from modules.seek_harvest import main as _harvest
from modules.seek_harvest.lib.config import ConfigError, Settings
from service import logging_utils as L
from service import scheduler as _scheduler

LOG = logging.getLogger("service.cli")


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    Parse key=value strings into a dict.
    JSON-looking values (numbers, true/false, quoted strings) are decoded;
    everything else is kept as the raw string.
    """
    out: dict[str, Any] = {}
    for raw in pairs:
        if "=" not in raw:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {raw!r})")
        k, v = raw.split("=", 1)
        k = k.strip()
        if not k:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {raw!r}")
        try:
            out[k] = json.loads(v.strip())
        except ValueError:
            out[k] = v.strip()
    return out


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat()


# ------------------------------ Subcommands ----------------------------------
def cmd_run(args: argparse.Namespace) -> int:
    run_id = uuid.uuid4().hex
    start_time = time.monotonic()
    kwargs = _parse_kv_pairs(args.kwargs or [])

    try:
        processed = _harvest.run(**kwargs)
    except KeyboardInterrupt:
        return 130
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        L.write_error_log({"ts": _now_iso(), "where": "cli.run", "run_id": run_id, "error": repr(e)})
        return 2
    except Exception as e:
        LOG.exception("Crawl failed: %s", e)
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _now_iso(),
            "where": "cli.run",
            "run_id": run_id,
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int((time.monotonic() - start_time) * 1000),
        })
        return 1

    L.write_activity_log({
        "ts": _now_iso(),
        "event": "cli_run",
        "run_id": run_id,
        "kwargs": kwargs,
        "processed": processed,
        "duration_ms": int((time.monotonic() - start_time) * 1000),
    })
    print(f"DONE: {processed} new posting(s) processed.")
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    kwargs = _parse_kv_pairs(args.kwargs or [])
    try:
        known = _harvest.migrate(**kwargs)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        LOG.exception("Store check failed: %s", e)
        print(f"FAILURE: {e}", file=sys.stderr)
        return 1
    print(f"OK: store holds {known} posting id(s).")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    kwargs = _parse_kv_pairs(args.kwargs or [])
    if args.cron:
        trigger_def: dict[str, Any] = {"cron": args.cron}
    else:
        trigger_def = {"interval": {"minutes": args.interval_minutes}}

    # Fail fast on a bad config, key or trigger instead of at the first fire.
    try:
        Settings.from_env_and_kwargs(kwargs)
        _scheduler.build_trigger(trigger_def)
    except (ConfigError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    stop_event = threading.Event()

    def _graceful_shutdown(signum=None, frame=None):
        LOG.info("Signal %s received; initiating shutdown...", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _graceful_shutdown)

    try:
        controller = _scheduler.start(_harvest.run, kwargs, trigger_def, timezone_name=args.timezone)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    L.write_activity_log({"ts": _now_iso(), "event": "serve_start", "trigger": trigger_def})
    try:
        while not stop_event.is_set():
            time.sleep(0.3)
    except KeyboardInterrupt:
        return 130
    finally:
        controller.stop()
        controller.join(timeout=10.0)
        L.write_activity_log({"ts": _now_iso(), "event": "serve_stop"})
    return 0


# ------------------------------- Argparse ------------------------------------
def _add_kwargs(sp: argparse.ArgumentParser) -> None:
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Crawl settings, e.g. max_pages=5 output_path=/data/jobs.csv (JSON values supported).",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m service.cli",
        description="Incremental SEEK crawl with structured contract extraction",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("run", help="Run one incremental crawl.")
    _add_kwargs(sp)
    sp.set_defaults(func=cmd_run)

    sp = sub.add_parser("migrate", help="Load the store and upgrade a legacy header in place.")
    _add_kwargs(sp)
    sp.set_defaults(func=cmd_migrate)

    sp = sub.add_parser("serve", help="Re-run the crawl on a schedule until stopped.")
    when = sp.add_mutually_exclusive_group()
    when.add_argument("--interval-minutes", type=int, default=60, help="Minutes between crawls.")
    when.add_argument("--cron", help="Crontab expression (5 fields) instead of an interval.")
    sp.add_argument("--timezone", default=os.getenv("TZ") or "UTC", help="Timezone for cron triggers.")
    _add_kwargs(sp)
    sp.set_defaults(func=cmd_serve)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
