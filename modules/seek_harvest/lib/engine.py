"""
Crawl orchestrator: page through the search results newest-first, enrich
every posting the store has not seen, and append one row per success.

Stop conditions, checked per page in this order:
  - the listing page is empty (upstream exhausted)
  - nothing on the page is new (frontier reached; assumes newest-first order)
  - `max_pages` pages were processed (quota)

A failure while handling one posting is logged and the crawl moves on; a
listing failure ends the paging since the frontier can no longer be judged.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from . import logging_bridge
from .config import Settings
from .extractor import StructuredExtractor
from .fetchers import DetailFetcher, ListingFetcher
from .http_client import HttpClient
from .models import Extraction, PostingRecord, PostingSummary
from .normalize import html_to_text
from .store import DedupStore
from .utils import now_iso

log = logging.getLogger(__name__)

STOP_EMPTY_PAGE = "empty_page"
STOP_FRONTIER = "frontier_reached"
STOP_MAX_PAGES = "max_pages"
STOP_LISTING_FAILED = "listing_failed"


class Listing(Protocol):
    def fetch(self, page: int) -> list[PostingSummary]: ...


class Detail(Protocol):
    def fetch(self, job_id: str) -> str: ...


class Extractor(Protocol):
    def extract(self, text: str) -> Extraction: ...


@dataclass
class CrawlStats:
    pages: int = 0
    seen: int = 0
    processed: int = 0
    skipped_empty: int = 0
    failed: int = 0
    stop_reason: str = ""
    failures: dict[str, str] = field(default_factory=dict)


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_once(
    settings: Settings,
    *,
    store: DedupStore | None = None,
    listing: Listing | None = None,
    detail: Detail | None = None,
    extractor: Extractor | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], str] = now_iso,
) -> int:
    """
    Run one incremental crawl and return the number of newly stored postings.

    Collaborators default to the real HTTP-backed implementations; tests pass
    fakes. The store is loaded (and migrated if needed) before any request.
    """
    start_ns = time.perf_counter_ns()

    if store is None:
        store = DedupStore(settings.output_path)
    store.load()

    client = None
    if listing is None or detail is None or extractor is None:
        client = HttpClient(
            timeout=settings.timeout,
            max_attempts=settings.max_attempts,
            base_delay=settings.base_delay,
            sleep=sleep,
        )
        if listing is None:
            listing = ListingFetcher(settings, client)
        if detail is None:
            detail = DetailFetcher(settings, client)
        if extractor is None:
            extractor = StructuredExtractor(settings, client)

    stats = CrawlStats()
    logging_bridge.activity({
        "component": "seek_harvest.engine",
        "op": "start",
        "output_path": settings.output_path,
        "known_ids": len(store),
        "max_pages": settings.max_pages,
        "degraded_store": store.degraded,
    })

    try:
        stats.stop_reason = _crawl_pages(settings, store, listing, detail, extractor, stats, sleep, clock)
    finally:
        if client is not None:
            client.close()

    total_us = int((time.perf_counter_ns() - start_ns) // 1000)
    logging_bridge.activity({
        "component": "seek_harvest.engine",
        "op": "summary",
        "pages": stats.pages,
        "seen": stats.seen,
        "processed": stats.processed,
        "skipped_empty": stats.skipped_empty,
        "failed": stats.failed,
        "failures": stats.failures,
        "stop_reason": stats.stop_reason,
        "total_us": total_us,
    })
    log.info(
        "Crawl finished: %d new posting(s) processed, %d failed, %d empty, %d page(s), stop=%s",
        stats.processed,
        stats.failed,
        stats.skipped_empty,
        stats.pages,
        stats.stop_reason,
    )
    return stats.processed


# =============================================================================
# PAGING LOOP
# =============================================================================
def _crawl_pages(
    settings: Settings,
    store: DedupStore,
    listing: Listing,
    detail: Detail,
    extractor: Extractor,
    stats: CrawlStats,
    sleep: Callable[[float], None],
    clock: Callable[[], str],
) -> str:
    # Ids tried this run without ending up in the store (failed or empty).
    attempted: set[str] = set()

    for page in range(1, settings.max_pages + 1):
        if page > 1 and settings.page_delay:
            sleep(settings.page_delay)

        try:
            summaries = listing.fetch(page)
        except Exception as e:
            log.error("Listing page %d failed; stopping: %s", page, e)
            logging_bridge.error({
                "component": "seek_harvest.engine",
                "op": "listing_failed",
                "page": page,
                "error": repr(e),
            })
            return _stop(STOP_LISTING_FAILED, page)

        stats.pages += 1
        stats.seen += len(summaries)
        if not summaries:
            return _stop(STOP_EMPTY_PAGE, page)

        fresh = [s for s in summaries if not store.contains(s.job_id) and s.job_id not in attempted]
        logging_bridge.activity({
            "component": "seek_harvest.engine",
            "op": "page",
            "page": page,
            "fetched": len(summaries),
            "new": len(fresh),
        })
        if not fresh:
            return _stop(STOP_FRONTIER, page)

        for summary in fresh:
            if _process_posting(settings, summary, store, detail, extractor, stats, sleep, clock):
                stats.processed += 1
            else:
                attempted.add(summary.job_id)

    return _stop(STOP_MAX_PAGES, settings.max_pages)


def _stop(reason: str, page: int) -> str:
    logging_bridge.activity({
        "component": "seek_harvest.engine",
        "op": "stop",
        "reason": reason,
        "page": page,
    })
    return reason


# =============================================================================
# PER-POSTING PIPELINE
# =============================================================================
def _process_posting(
    settings: Settings,
    summary: PostingSummary,
    store: DedupStore,
    detail: Detail,
    extractor: Extractor,
    stats: CrawlStats,
    sleep: Callable[[float], None],
    clock: Callable[[], str],
) -> bool:
    """detail -> normalize -> extract -> append. True only if a row was stored."""
    job_id = summary.job_id
    try:
        try:
            markup = detail.fetch(job_id)
        finally:
            if settings.detail_delay:
                sleep(settings.detail_delay)

        text = html_to_text(markup)
        if not text:
            stats.skipped_empty += 1
            log.warning("Skipping job %s: empty description", job_id)
            logging_bridge.activity({
                "component": "seek_harvest.engine",
                "op": "posting_skipped",
                "job_id": job_id,
                "reason": "empty_description",
            })
            return False

        try:
            extraction = extractor.extract(text)
        finally:
            if settings.extract_delay:
                sleep(settings.extract_delay)

        record = PostingRecord.from_extraction(job_id, extraction, crawl_time=clock())
        store.append(record)
    except Exception as e:
        stats.failed += 1
        stats.failures[job_id] = repr(e)
        log.warning("Skipping job %s: %s", job_id, e)
        logging_bridge.error({
            "component": "seek_harvest.engine",
            "op": "posting_failed",
            "job_id": job_id,
            "title": summary.title,
            "error": repr(e),
        })
        return False

    log.info("Stored job %s (%s)", job_id, summary.title or "untitled")
    return True
