from __future__ import annotations

from typing import Any

from .lib.config import Settings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity
from .lib.store import DedupStore


def run(**kwargs: Any) -> int:
    """
    Entry point for the 'seek_harvest' module.

    Accepts kwargs (from CLI/scheduler), including:
      output_path: str = "/app/local/state/seek_jobs.csv"
      max_pages: int = 10
      page_size: int = 22
      classification: str = "6281"
      work_type: str = "244"
      locale / country_code / zone / timezone
      model: str = "gemini-2.5-flash"
      detail_delay / extract_delay / page_delay: float seconds

    The credential comes from the env var named by `api_key_env`
    (default GEMINI_API_KEY); FatalConfigError is raised before any request
    if it is missing.

    Returns:
      Number of postings newly stored by this run.
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "seek_harvest.main",
        "op": "start",
        "output_path": settings.output_path,
        "classification": settings.classification,
        "work_type": settings.work_type,
        "model": settings.model,
    })

    return _run_engine(settings)


def migrate(**kwargs: Any) -> int:
    """Load the store (migrating a legacy header in place) and return the id count."""
    settings = Settings.from_env_and_kwargs(kwargs, require_api_key=False)
    return len(DedupStore(settings.output_path).load())
