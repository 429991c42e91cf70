# modules/seek_harvest/lib/fetchers/listing.py
from __future__ import annotations

import logging
from typing import Any

from ..config import Settings
from ..http_client import HttpClient
from ..models import PostingSummary
from .base import FetchError

log = logging.getLogger(__name__)


class ListingFetcher:
    """
    Job search API, one page per call, newest listings first.

    An empty `data` array is the normal end of results, not an error.
    """

    def __init__(self, settings: Settings, client: HttpClient):
        self._settings = settings
        self._client = client

    def build_params(self, page: int) -> dict[str, Any]:
        s = self._settings
        return {
            "siteKey": s.site_key,
            "sourceSystem": "houston",
            "where": s.where,
            "page": page,
            "classification": s.classification,
            "workType": s.work_type,
            "pageSize": s.page_size,
            "include": "seodata",
            "locale": s.locale,
            "source": "FE_SERP",
            "relatedSearchesCount": 12,
            "queryHints": "spellingCorrection",
            "facets": "salaryMin,workArrangement,workType",
            "sortMode": "ListedDate",
        }

    def fetch(self, page: int) -> list[PostingSummary]:
        data = self._client.send_json(
            "GET",
            self._settings.listing_url,
            params=self.build_params(page),
            headers={"Accept": "application/json"},
        )
        return parse_listing(data, page=page)


def parse_listing(data: Any, *, page: int = 0) -> list[PostingSummary]:
    """
    Shape: {"totalCount": N, "data": [{"id": 123, "title": ..., "advertiser": {...}}, ...]}
    """
    if not isinstance(data, dict):
        raise FetchError(f"listing page {page}: expected a JSON object, got {type(data).__name__}")
    items = data.get("data")
    if items is None and data.get("totalCount") == 0:
        return []
    if not isinstance(items, list):
        raise FetchError(f"listing page {page}: missing 'data' array")

    out: list[PostingSummary] = []
    seen: set[str] = set()
    for i, item in enumerate(items):
        job_id = str(item.get("id") or "").strip() if isinstance(item, dict) else ""
        if not job_id:
            log.warning("Listing page %d item %d has no id; ignored", page, i)
            continue
        if job_id in seen:
            continue
        seen.add(job_id)
        advertiser = item.get("advertiser")
        out.append(
            PostingSummary(
                job_id=job_id,
                title=str(item.get("title") or "").strip(),
                advertiser=str(advertiser.get("description") or "").strip() if isinstance(advertiser, dict) else "",
                listing_date=str(item.get("listingDate") or "").strip(),
            )
        )
    return out
