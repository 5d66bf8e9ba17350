"""ID generation, hashing and URL utilities."""

from __future__ import annotations

import hashlib
import re
import uuid
from datetime import UTC, datetime
from urllib.parse import urljoin, urlparse


def generate_run_id(now: datetime | None = None) -> str:
    """Generate a unique, time-sortable run ID.

    Format: YYYYMMDD_HHMMSS_ffffff_<short_uuid>
    """
    now = now or datetime.now(UTC)
    short_uuid = uuid.uuid4().hex[:8]
    return f"{now.strftime('%Y%m%d_%H%M%S_%f')}_{short_uuid}"


def structure_hash(content: str | bytes) -> str:
    """Full SHA-256 hex digest of content."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def is_http_url(value: str | None) -> bool:
    """True when value parses as an absolute http(s) URL."""
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_relative_url(value: str) -> bool:
    """True for URLs without scheme and host (e.g. ``/jobs/123``)."""
    parsed = urlparse(value)
    return not parsed.scheme and not parsed.netloc


def resolve_url(base_url: str, url: str) -> str:
    """Resolve url against base_url, leaving absolute URLs untouched."""
    if not is_relative_url(url):
        return url
    return urljoin(base_url.rstrip("/") + "/", url.lstrip("/"))


def last_path_segment(url: str) -> str | None:
    """Return the last non-empty path segment of a URL."""
    segments = [s for s in urlparse(url).path.split("/") if s]
    return segments[-1] if segments else None


def matching_key(*parts: str) -> str:
    """Lowercase, whitespace- and punctuation-free key for fuzzy matching."""
    text = ":".join(parts).lower()
    return re.sub(r"[\W_]+", "", text)
