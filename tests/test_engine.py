# tests/test_engine.py
import json

import pytest

from modules.seek_harvest.lib import engine
from modules.seek_harvest.lib.extractor import ExtractionError
from modules.seek_harvest.lib.fetchers import FetchError
from modules.seek_harvest.lib.models import PostingRecord
from modules.seek_harvest.lib.store import DedupStore, StoreError, read_rows
from service.logging_utils import get_activity_log_path


def _run(settings, listing, detail=None, extractor=None, **kw):
    return engine.run_once(
        settings,
        listing=listing,
        detail=detail,
        extractor=extractor,
        sleep=kw.pop("sleep", lambda s: None),
        **kw,
    )


def _activity_records():
    path = get_activity_log_path()
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


def _ids(path):
    return [r["jobID"] for r in read_rows(str(path))]


def _seed(settings, *job_ids, fakes):
    store = DedupStore(settings.output_path)
    store.load()
    for j in job_ids:
        store.append(PostingRecord.from_extraction(j, fakes.extraction(), crawl_time="2024-12-31T00:00:00Z"))


# ---- core paging -----------------------------------------------------------


def test_two_new_postings_are_stored(settings, store_path, fakes):
    listing = fakes.Listing({1: ["A", "B"]})
    detail, extractor = fakes.Detail(), fakes.Extractor()

    processed = _run(settings, listing, detail, extractor)

    assert processed == 2
    assert _ids(store_path) == ["A", "B"]
    assert detail.calls == ["A", "B"]
    assert len(extractor.calls) == 2
    # Page 2 was empty, which ends the crawl.
    assert listing.calls == [1, 2]


def test_known_posting_stops_after_first_page(settings, store_path, fakes):
    _seed(settings, "A", fakes=fakes)
    listing = fakes.Listing({1: ["A"], 2: ["Z"]})
    detail = fakes.Detail()

    assert _run(settings, listing, detail, fakes.Extractor()) == 0
    assert listing.calls == [1]
    assert detail.calls == []
    assert _ids(store_path) == ["A"]


def test_frontier_on_later_page(settings, store_path, fakes):
    _seed(settings, "OLD", fakes=fakes)
    listing = fakes.Listing({1: ["N1", "N2"], 2: ["N3", "OLD"], 3: ["OLD"], 4: ["NEVER"]})

    assert _run(settings, listing, fakes.Detail(), fakes.Extractor()) == 3
    assert listing.calls == [1, 2, 3]
    assert _ids(store_path) == ["OLD", "N1", "N2", "N3"]


def test_max_pages_caps_the_crawl(make_settings, store_path, fakes):
    settings = make_settings(max_pages=2)
    listing = fakes.Listing({p: [f"J{p}"] for p in range(1, 6)})

    assert _run(settings, listing, fakes.Detail(), fakes.Extractor()) == 2
    assert listing.calls == [1, 2]


def test_rerun_is_idempotent(settings, store_path, fakes):
    pages = {1: ["A", "B"]}
    assert _run(settings, fakes.Listing(pages), fakes.Detail(), fakes.Extractor()) == 2

    detail = fakes.Detail()
    assert _run(settings, fakes.Listing(pages), detail, fakes.Extractor()) == 0
    assert detail.calls == []
    assert _ids(store_path) == ["A", "B"]


# ---- per-posting failures --------------------------------------------------


def test_invalid_extraction_is_logged_and_skipped(settings, store_path, fakes):
    listing = fakes.Listing({1: ["B", "C", "E"]})
    extractor = fakes.Extractor({"for C": ExtractionError("candidate does not match schema")})

    assert _run(settings, listing, fakes.Detail(), extractor) == 2
    assert _ids(store_path) == ["B", "E"]


def test_empty_description_skips_extraction(settings, store_path, fakes):
    listing = fakes.Listing({1: ["D", "F"]})
    detail = fakes.Detail({"D": "<div>  <br/> </div>"})
    extractor = fakes.Extractor()

    assert _run(settings, listing, detail, extractor) == 1
    assert len(extractor.calls) == 1
    assert "for F" in extractor.calls[0]
    assert _ids(store_path) == ["F"]


def test_empty_description_is_retried_on_next_run(settings, store_path, fakes):
    _run(settings, fakes.Listing({1: ["D"]}), fakes.Detail({"D": ""}), fakes.Extractor())
    assert _ids(store_path) == []

    assert _run(settings, fakes.Listing({1: ["D"]}), fakes.Detail(), fakes.Extractor()) == 1
    assert _ids(store_path) == ["D"]


def test_detail_failure_does_not_stop_the_page(settings, store_path, fakes):
    listing = fakes.Listing({1: ["X", "Y"]})
    detail = fakes.Detail({"X": FetchError("GraphQL errors: boom")})

    assert _run(settings, listing, detail, fakes.Extractor()) == 1
    assert _ids(store_path) == ["Y"]


def test_failed_posting_is_not_retried_within_a_run(settings, store_path, fakes):
    listing = fakes.Listing({1: ["X"], 2: ["X"], 3: ["Y"]})
    detail = fakes.Detail({"X": FetchError("nope")})

    assert _run(settings, listing, detail, fakes.Extractor()) == 0
    assert detail.calls == ["X"]
    # Page 2 holds nothing new for this run, so paging stops there.
    assert listing.calls == [1, 2]


def test_listing_failure_ends_paging(settings, store_path, fakes):
    listing = fakes.Listing({1: ["A"], 2: ["B"]}, fail_on={2})

    assert _run(settings, listing, fakes.Detail(), fakes.Extractor()) == 1
    assert listing.calls == [1, 2]
    assert _ids(store_path) == ["A"]


def test_unknown_store_header_aborts_before_listing(settings, store_path, fakes):
    store_path.parent.mkdir(parents=True)
    store_path.write_text("id,when\n1,2\n", encoding="utf-8")
    listing = fakes.Listing({1: ["A"]})

    with pytest.raises(StoreError, match="unrecognized header"):
        _run(settings, listing, fakes.Detail(), fakes.Extractor())
    assert listing.calls == []


# ---- pacing & timestamps ---------------------------------------------------


def test_delays_are_observed(make_settings, fakes):
    settings = make_settings(detail_delay=1.0, extract_delay=2.0, page_delay=1.5)
    sleeps = []
    listing = fakes.Listing({1: ["A", "B"]})

    _run(settings, listing, fakes.Detail({"B": ""}), fakes.Extractor(), sleep=sleeps.append)

    # A: detail + extract; B: detail only (empty); then page 2 is fetched after a page delay.
    assert sleeps == [1.0, 2.0, 1.0, 1.5]


def test_crawl_time_is_utc_second_precision(settings, store_path, fakes, frozen_utc):
    _run(settings, fakes.Listing({1: ["A"]}), fakes.Detail(), fakes.Extractor())

    (row,) = read_rows(str(store_path))
    assert row["crawlTime"] == "2025-01-01T00:00:00Z"
    assert row["durationSpecified"] == "true"
    assert row["durationMonths"] == "6"
    assert row["renewalMentioned"] == "false"
    assert row["startIso"] == "2025-01-06"


def test_store_append_failure_does_not_stop_the_crawl(settings, store_path, fakes):
    class FlakyStore(DedupStore):
        def append(self, record):
            if record.job_id == "A":
                raise OSError("disk full")
            super().append(record)

    listing = fakes.Listing({1: ["A", "B"]})

    processed = _run(settings, listing, fakes.Detail(), fakes.Extractor(), store=FlakyStore(str(store_path)))

    assert processed == 1
    assert _ids(store_path) == ["B"]
    summary = [r for r in _activity_records() if r.get("op") == "summary"][-1]
    assert summary["failed"] == 1
    assert "disk full" in summary["failures"]["A"]


def test_delays_apply_after_failed_steps(make_settings, fakes):
    settings = make_settings(detail_delay=1.0, extract_delay=2.0, page_delay=1.5)
    sleeps = []
    listing = fakes.Listing({1: ["X", "Y"]})
    detail = fakes.Detail({"X": FetchError("detail down")})
    extractor = fakes.Extractor({"for Y": ExtractionError("no candidate text")})

    assert _run(settings, listing, detail, extractor, sleep=sleeps.append) == 0

    # X: detail fails; Y: detail ok, extraction fails; then page 2 after a page delay.
    assert sleeps == [1.0, 1.0, 2.0, 1.5]
