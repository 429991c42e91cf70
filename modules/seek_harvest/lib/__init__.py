# modules/seek_harvest/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import ConfigError, FatalConfigError, Settings
from .engine import run_once
from .extractor import ExtractionError, StructuredExtractor
from .fetchers import DetailFetcher, FetchError, ListingFetcher
from .http_client import HttpClient, TransientNetworkError, retry_call
from .models import COLUMNS, Extraction, PostingRecord, PostingSummary
from .store import DedupStore, StoreError, StoreMigrationError

__all__ = [
    "COLUMNS",
    "ConfigError",
    "DedupStore",
    "DetailFetcher",
    "Extraction",
    "ExtractionError",
    "FatalConfigError",
    "FetchError",
    "HttpClient",
    "ListingFetcher",
    "PostingRecord",
    "PostingSummary",
    "Settings",
    "StoreError",
    "StoreMigrationError",
    "StructuredExtractor",
    "TransientNetworkError",
    "retry_call",
    "run_once",
]
