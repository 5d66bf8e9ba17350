"""
Source adapters for job collection.

Each adapter fetches listings from one external source (an API or a
scraped site) and returns CanonicalJob records in a CollectionResult.
Concrete adapters and the registry live in ``collectors.adapters``.
"""

from collectors.base import SourceAdapter
from collectors.http_client import FetchResult, HttpClient, RateLimiter

__all__ = [
    "SourceAdapter",
    "HttpClient",
    "FetchResult",
    "RateLimiter",
]
