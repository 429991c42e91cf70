# tests/conftest.py
import os
import pathlib
import types
import warnings

import pytest
from freezegun import freeze_time

from modules.seek_harvest.lib import config as sh_config
from modules.seek_harvest.lib.models import Extraction, PostingSummary

warnings.filterwarnings("error", category=DeprecationWarning, module="modules")


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch, tmp_path):
    # Keep JSONL logs out of the real log dir
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.delenv("SEEK_HARVEST_OUTPUT", raising=False)
    monkeypatch.delenv("SEEK_HARVEST_MODEL", raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


@pytest.fixture
def store_path(tmp_path: pathlib.Path) -> pathlib.Path:
    return tmp_path / "state" / "seek_jobs.csv"


@pytest.fixture
def make_settings(store_path):
    """Settings factory: zero delays, per-test store path, overrides via kwargs."""

    def _make(**overrides):
        kw = {
            "output_path": str(store_path),
            "detail_delay": 0,
            "extract_delay": 0,
            "page_delay": 0,
            "base_delay": 0,
        }
        kw.update(overrides)
        return sh_config.Settings.from_env_and_kwargs(kw)

    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


# ---------------------------------------------------------------------
# Fake collaborators for the crawl engine
# ---------------------------------------------------------------------
def extraction(**overrides) -> Extraction:
    base = {
        "duration_specified": True,
        "duration_months": 6,
        "renewal_mentioned": False,
        "start_specified": True,
        "start_iso": "2025-01-06",
        "start_descriptor": "ASAP",
    }
    base.update(overrides)
    return Extraction(**base)


class FakeListing:
    """pages: {page_number: [job ids]}; missing pages are empty."""

    def __init__(self, pages, fail_on=()):
        self.pages = pages
        self.fail_on = set(fail_on)
        self.calls: list[int] = []

    def fetch(self, page):
        self.calls.append(page)
        if page in self.fail_on:
            raise RuntimeError(f"listing page {page} exploded")
        return [PostingSummary(job_id=j, title=f"Job {j}") for j in self.pages.get(page, [])]


class FakeDetail:
    """descriptions: {job id: markup | Exception}; default is a short contract ad."""

    def __init__(self, descriptions=None):
        self.descriptions = descriptions or {}
        self.calls: list[str] = []

    def fetch(self, job_id):
        self.calls.append(job_id)
        value = self.descriptions.get(job_id, f"<p>6 month contract for {job_id}, start ASAP</p>")
        if isinstance(value, Exception):
            raise value
        return value


class FakeExtractor:
    """results: {substring of text: Extraction | Exception}; default extraction otherwise."""

    def __init__(self, results=None):
        self.results = results or {}
        self.calls: list[str] = []

    def extract(self, text):
        self.calls.append(text)
        for needle, value in self.results.items():
            if needle in text:
                if isinstance(value, Exception):
                    raise value
                return value
        return extraction()


@pytest.fixture
def fakes():
    return types.SimpleNamespace(
        Listing=FakeListing,
        Detail=FakeDetail,
        Extractor=FakeExtractor,
        extraction=extraction,
    )


# ---------------------------------------------------------------------
# Fake HTTP session (requests.Session-shaped)
# ---------------------------------------------------------------------
class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=None):
        self.status_code = status_code
        self._json = json_data
        if text is None:
            import json

            text = json.dumps(json_data) if json_data is not None else ""
        self.text = text

    def json(self):
        if self._json is None:
            import json

            return json.loads(self.text)
        return self._json


class FakeSession:
    """Returns queued outcomes in order; an Exception outcome is raised."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.headers: dict[str, str] = {}
        self.requests: list[dict] = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


@pytest.fixture
def http():
    return types.SimpleNamespace(Response=FakeResponse, Session=FakeSession)
