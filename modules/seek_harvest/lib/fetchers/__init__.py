# modules/seek_harvest/lib/fetchers/__init__.py
from __future__ import annotations

from .base import FetchError
from .detail import DetailFetcher
from .listing import ListingFetcher

__all__ = ["DetailFetcher", "FetchError", "ListingFetcher"]
