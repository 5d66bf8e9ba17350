"""Exception taxonomy for the collection pipeline.

Configuration errors are raised synchronously at the call that triggers
them. Transient HTTP errors are retried by the HTTP client. Data-quality
problems are never raised; they travel as ValidationIssue records.
"""

from __future__ import annotations

from typing import Any


class CollectionError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(CollectionError):
    """Missing credentials, invalid schedule, unknown or disabled source."""


class ConfigValidationError(ConfigurationError):
    """Raised when a configuration file fails validation."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class AuthenticationError(CollectionError):
    """Credentials were rejected by the source. Never retried."""


class TransientHTTPError(CollectionError):
    """Retryable HTTP status (429 or a gateway error)."""

    def __init__(self, status_code: int, url: str):
        super().__init__(f"HTTP {status_code} from {url}")
        self.status_code = status_code
        self.url = url
