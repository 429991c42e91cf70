from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from .utils import getenv_str, truthy


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


class FatalConfigError(ConfigError):
    """Raised when the extraction credential is missing; nothing may run."""


# -----------------------------
# Model
# -----------------------------
@dataclass(frozen=True)
class Settings:
    """
    Canonical configuration for one 'seek_harvest' crawl.

    Built once per run and passed into every component; nothing downstream
    reads the environment on its own. The credential is resolved here so that
    a missing key aborts the run before any request is made.
    """

    # Store
    output_path: str = "/app/local/state/seek_jobs.csv"

    # Paging
    max_pages: int = 10
    page_size: int = 22

    # Search facets
    classification: str = "6281"
    work_type: str = "244"
    where: str = "All Australia"
    site_key: str = "AU-Main"

    # Market / request scope
    locale: str = "en-AU"
    country_code: str = "AU"
    language_code: str = "en"
    zone: str = "anz-1"
    timezone: str = "Australia/Sydney"

    # Upstream endpoints
    listing_url: str = "https://www.seek.com.au/api/jobsearch/v5/search"
    graphql_url: str = "https://www.seek.com.au/graphql"
    extract_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # Extraction
    model: str = "gemini-2.5-flash"
    max_input_chars: int = 20000

    # Pacing (seconds)
    detail_delay: float = 1.0
    extract_delay: float = 2.0
    page_delay: float = 1.5

    # Retry policy
    max_attempts: int = 4
    base_delay: float = 0.25
    timeout: float = 20.0

    # Credential
    api_key_env: str = "GEMINI_API_KEY"
    api_key: str = field(default="", repr=False)

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None, *, require_api_key: bool = True) -> Settings:
        """
        Build Settings from kwargs with validation.

        Unknown keys are rejected so that a typo in a scheduler or CLI
        invocation does not silently fall back to a default.

        Environment fallbacks:
            SEEK_HARVEST_OUTPUT  -> output_path
            SEEK_HARVEST_MODEL   -> model
            <api_key_env>        -> api_key (required unless require_api_key=False)
        """
        kw = dict(kwargs or {})
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(k for k in kw if k not in known or k == "api_key")
        if unknown:
            raise ConfigError(f"Unknown seek_harvest option(s): {unknown}")

        values: dict[str, Any] = {}
        for name, value in kw.items():
            if value is None:
                continue
            values[name] = _coerce(name, known[name].type, value)

        values.setdefault("output_path", getenv_str("SEEK_HARVEST_OUTPUT", cls.output_path))
        values.setdefault("model", getenv_str("SEEK_HARVEST_MODEL", cls.model))

        api_key_env = str(values.get("api_key_env") or cls.api_key_env)
        api_key = (os.getenv(api_key_env) or "").strip()
        if require_api_key and not api_key:
            raise FatalConfigError(f"{api_key_env} is not set; refusing to start the crawl.")

        settings = cls(**values, api_key=api_key)
        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _coerce(name: str, annotation: Any, value: Any) -> Any:
    kind = annotation if isinstance(annotation, str) else getattr(annotation, "__name__", "str")
    try:
        if kind == "int":
            if isinstance(value, bool):
                raise ValueError("boolean given")
            return int(str(value).strip())
        if kind == "float":
            return float(str(value).strip())
        if kind == "bool":
            return truthy(value)
    except ValueError as e:
        raise ConfigError(f"'{name}' must be a {kind} (got {value!r})") from e
    return str(value).strip()


def _validate_settings(s: Settings) -> None:
    if s.max_pages < 1:
        raise ConfigError("'max_pages' must be >= 1.")
    if s.page_size < 1:
        raise ConfigError("'page_size' must be >= 1.")
    if s.max_attempts < 1:
        raise ConfigError("'max_attempts' must be >= 1.")
    if s.max_input_chars < 1:
        raise ConfigError("'max_input_chars' must be >= 1.")
    for name in ("detail_delay", "extract_delay", "page_delay", "base_delay"):
        if getattr(s, name) < 0:
            raise ConfigError(f"'{name}' cannot be negative.")
    if s.timeout <= 0:
        raise ConfigError("'timeout' must be > 0.")
    for name in ("output_path", "listing_url", "graphql_url", "extract_base_url", "model"):
        if not getattr(s, name).strip():
            raise ConfigError(f"'{name}' cannot be empty.")
