from __future__ import annotations

from dataclasses import dataclass

# Column order of the persisted table. The first five columns are the legacy
# layout; the start* columns were added later and are backfilled on migration.
LEGACY_COLUMNS: tuple[str, ...] = (
    "crawlTime",
    "jobID",
    "durationSpecified",
    "durationMonths",
    "renewalMentioned",
)
COLUMNS: tuple[str, ...] = (
    *LEGACY_COLUMNS,
    "startSpecified",
    "startIso",
    "startDescriptor",
)

NOT_SPECIFIED = "not specified"


@dataclass(frozen=True)
class PostingSummary:
    """
    One search result as returned by the listing endpoint.
    Only `job_id` matters to the crawl; the rest is kept for logs.
    """

    job_id: str
    title: str = ""
    advertiser: str = ""
    listing_date: str = ""


@dataclass(frozen=True)
class Extraction:
    """Structured signals pulled out of a posting description."""

    duration_specified: bool
    duration_months: int
    renewal_mentioned: bool
    start_specified: bool
    start_iso: str
    start_descriptor: str


@dataclass(frozen=True)
class PostingRecord:
    """One persisted row; created once, after a posting was fully enriched."""

    crawl_time: str
    job_id: str
    duration_specified: bool
    duration_months: int
    renewal_mentioned: bool
    start_specified: bool
    start_iso: str
    start_descriptor: str

    @classmethod
    def from_extraction(cls, job_id: str, extraction: Extraction, *, crawl_time: str) -> PostingRecord:
        return cls(
            crawl_time=crawl_time,
            job_id=job_id,
            duration_specified=extraction.duration_specified,
            duration_months=extraction.duration_months,
            renewal_mentioned=extraction.renewal_mentioned,
            start_specified=extraction.start_specified,
            start_iso=extraction.start_iso,
            start_descriptor=extraction.start_descriptor,
        )

    def to_row(self) -> dict[str, str]:
        """Serialize to column name -> text, booleans as 'true'/'false'."""
        return {
            "crawlTime": self.crawl_time,
            "jobID": self.job_id,
            "durationSpecified": _bool_text(self.duration_specified),
            "durationMonths": str(int(self.duration_months)),
            "renewalMentioned": _bool_text(self.renewal_mentioned),
            "startSpecified": _bool_text(self.start_specified),
            "startIso": self.start_iso,
            "startDescriptor": self.start_descriptor,
        }


def _bool_text(v: bool) -> str:
    return "true" if v else "false"
