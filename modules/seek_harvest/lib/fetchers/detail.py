# modules/seek_harvest/lib/fetchers/detail.py
from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Any

from ..config import Settings
from ..http_client import HttpClient
from .base import FetchError

log = logging.getLogger(__name__)

JOB_DETAILS_QUERY = """
query jobDetails(
  $jobId: ID!
  $jobDetailsViewedCorrelationId: String!
  $sessionId: String!
  $zone: Zone!
  $locale: Locale!
  $languageCode: LanguageCodeIso!
  $countryCode: CountryCodeIso2!
  $timezone: Timezone!
  $visitorId: UUID!
) {
  jobDetails(
    id: $jobId
    tracking: {
      channel: "WEB"
      jobDetailsViewedCorrelationId: $jobDetailsViewedCorrelationId
      sessionId: $sessionId
    }
  ) {
    job {
      id
      title
      isExpired
      content(platform: WEB)
      listedAt {
        dateTimeUtc
      }
      advertiser {
        name(locale: $locale)
      }
    }
  }
}
""".strip()


class DetailFetcher:
    """
    GraphQL `jobDetails` call for a single posting.

    Each call carries fresh correlation/session/visitor ids; they scope the
    request only and are never stored.
    """

    def __init__(
        self,
        settings: Settings,
        client: HttpClient,
        *,
        new_id: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self._settings = settings
        self._client = client
        self._new_id = new_id

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "*/*",
            "seek-request-brand": "seek",
            "seek-request-country": self._settings.country_code,
            "X-Seek-Site": "chalice",
            "Origin": "https://www.seek.com.au",
        }

    def build_payload(self, job_id: str) -> dict[str, Any]:
        s = self._settings
        return {
            "operationName": "jobDetails",
            "variables": {
                "jobId": job_id,
                "jobDetailsViewedCorrelationId": self._new_id(),
                "sessionId": self._new_id(),
                "visitorId": self._new_id(),
                "zone": s.zone,
                "locale": s.locale,
                "languageCode": s.language_code,
                "countryCode": s.country_code,
                "timezone": s.timezone,
            },
            "query": JOB_DETAILS_QUERY,
        }

    def fetch(self, job_id: str) -> str:
        """Return the description markup, or "" when the upstream has none."""
        data = self._client.send_json(
            "POST",
            self._settings.graphql_url,
            headers=self.headers(),
            json_body=self.build_payload(job_id),
        )
        return parse_job_content(data, job_id=job_id)


def parse_job_content(data: Any, *, job_id: str = "") -> str:
    """Read data.jobDetails.job.content; absent anywhere along the path means ""."""
    if not isinstance(data, dict):
        raise FetchError(f"job {job_id}: expected a JSON object, got {type(data).__name__}")

    body = data.get("data")
    errors = data.get("errors")
    if body is None and errors:
        messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
        raise FetchError(f"job {job_id}: GraphQL errors: {messages}")
    if errors:
        log.debug("job %s: GraphQL returned partial errors: %r", job_id, errors)

    if body is not None and not isinstance(body, dict):
        raise FetchError(f"job {job_id}: 'data' is {type(body).__name__}, expected an object")
    details = (body or {}).get("jobDetails") or {}
    job = details.get("job") if isinstance(details, dict) else None
    content = job.get("content") if isinstance(job, dict) else None
    if content is None:
        return ""
    if not isinstance(content, str):
        raise FetchError(f"job {job_id}: 'content' is {type(content).__name__}, expected a string")
    return content
