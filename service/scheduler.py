# service/scheduler.py
from __future__ import annotations

import logging
import threading
import time as _time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .logging_utils import write_activity_log, write_error_log

LOG = logging.getLogger(__name__)

JOB_ID = "seek_harvest"


# ---- Public controller ------------------------------------------------------


class SchedulerController:
    """Small façade around APScheduler so the CLI can manage lifecycle cleanly."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # A crawl in flight is allowed to finish its current posting.
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()

    def join(self, timeout: float | None = None) -> bool:
        return self._stopped_evt.wait(timeout=timeout)


# ---- Module API -------------------------------------------------------------


def start(
    run: Callable[..., int],
    kwargs: dict[str, Any],
    trigger_def: dict[str, Any],
    timezone_name: str | None = None,
) -> SchedulerController:
    """
    Schedule `run(**kwargs)` on the given trigger and start the scheduler.

    One executor thread and max_instances=1: two crawls never write the same
    store concurrently, and missed fires are coalesced into one.
    """
    tz = _resolve_timezone(timezone_name)
    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults={"coalesce": True, "max_instances": 1},
        executors={"default": ThreadPoolExecutor(1)},
        jobstores={"default": MemoryJobStore()},
    )
    trigger = build_trigger(trigger_def, tz)
    scheduler.add_job(
        func=_job_wrapper(run, kwargs),
        trigger=trigger,
        id=JOB_ID,
        replace_existing=True,
    )
    scheduler.start()

    job = scheduler.get_job(JOB_ID)
    LOG.info("Scheduler started; next crawl at %s", getattr(job, "next_run_time", None))
    return SchedulerController(scheduler)


def build_trigger(trig_def: dict[str, Any], tz: Any = None) -> Any:
    """
    Build an APScheduler trigger from a dict.

    Supported shapes:
      {"interval": {weeks|days|hours|minutes|seconds, jitter?}}
      {"cron":     "*/30 * * * *"}
      {"cron":     {second?, minute?, hour?, day?, day_of_week?, month?}}
    """
    if not isinstance(trig_def, dict):
        raise ValueError("trigger spec must be a dict")
    present = [k for k in ("interval", "cron") if trig_def.get(k) is not None]
    if len(present) != 1:
        raise ValueError("exactly one of {'interval','cron'} must be provided")

    if present[0] == "interval":
        spec = trig_def["interval"]
        if not isinstance(spec, dict):
            raise ValueError("interval must be an object with time fields")
        allowed = {"weeks", "days", "hours", "minutes", "seconds", "jitter"}
        unknown = set(spec) - allowed
        if unknown:
            raise ValueError(f"interval has unknown field(s): {sorted(unknown)}")
        values = {}
        for name in sorted(allowed):
            if name not in spec:
                continue
            try:
                v = int(spec[name])
            except (TypeError, ValueError) as err:
                raise ValueError(f"interval.{name} must be an integer") from err
            if v < 0:
                raise ValueError(f"interval.{name} must be >= 0")
            if v:
                values[name] = v
        if not any(k != "jitter" for k in values):
            raise ValueError("interval must be greater than 0")
        return IntervalTrigger(timezone=tz, **values)

    cron_spec = trig_def["cron"]
    if isinstance(cron_spec, str):
        if len(cron_spec.split()) != 5:
            raise ValueError(f"cron string must have 5 fields: {cron_spec!r}")
        return CronTrigger.from_crontab(cron_spec, timezone=tz)
    if isinstance(cron_spec, dict):
        allowed = {"second", "minute", "hour", "day", "day_of_week", "month"}
        unknown = set(cron_spec) - allowed
        if unknown:
            raise ValueError(f"cron has unknown field(s): {sorted(unknown)}")
        return CronTrigger(
            second=cron_spec.get("second", 0),
            minute=cron_spec.get("minute", 0),
            hour=cron_spec.get("hour"),
            day=cron_spec.get("day"),
            day_of_week=cron_spec.get("day_of_week"),
            month=cron_spec.get("month"),
            timezone=tz,
        )
    raise ValueError("cron must be a crontab string or an object")


# ---- Helpers ----------------------------------------------------------------


def _job_wrapper(run: Callable[..., int], kwargs: dict[str, Any]) -> Callable[[], None]:
    def _job() -> None:
        started = _time.monotonic()
        LOG.info("Scheduled crawl starting")
        try:
            processed = run(**kwargs)
        except Exception as e:
            LOG.exception("Scheduled crawl raised an exception.")
            write_error_log({
                "source": "scheduler",
                "event": "job_run",
                "job_id": JOB_ID,
                "error": repr(e),
                "duration_ms": int((_time.monotonic() - started) * 1000),
            })
            return
        duration = _time.monotonic() - started
        LOG.info("Scheduled crawl finished in %.1fs (%d new)", duration, processed)
        write_activity_log({
            "source": "scheduler",
            "event": "job_run",
            "job_id": JOB_ID,
            "status": "ok",
            "processed": processed,
            "duration_ms": int(duration * 1000),
            "finished_at": datetime.now(timezone.utc).isoformat(),
        })

    return _job


def _resolve_timezone(tz_name: str | None):
    """APScheduler 3.x is happiest with pytz zones; unknown names fall back to UTC."""
    import pytz

    try:
        return pytz.timezone(tz_name or "UTC")
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (unknown tz %r)", tz_name)
        return pytz.UTC
