"""Error taxonomy for the search-and-cache engine.

Every error carries a machine-readable ``kind`` and a human message so the
HTTP layer can render a structured response without inspecting the type.
"""

import math
from typing import Any


class DataHubError(Exception):
    """Base class for engine errors."""

    kind = "datahub_error"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a JSON-safe dict for responses and logs."""
        return {"error": self.kind, "message": self.message, **self.details}


class RateLimited(DataHubError):
    """Outbound call rejected by the rate window before any network I/O."""

    kind = "rate_limited"

    def __init__(self, retry_after: float):
        seconds = max(0, math.ceil(retry_after))
        super().__init__(
            f"Rate limit exceeded. Try again in {seconds} seconds.",
            details={"retry_after": seconds},
        )
        self.retry_after = retry_after


class UpstreamFetchFailed(DataHubError):
    """The external data source call failed and no stale value was usable."""

    kind = "upstream_fetch_failed"

    def __init__(self, url: str, original_error: Exception | None = None):
        reason = type(original_error).__name__ if original_error else "unknown error"
        super().__init__(
            f"Failed to fetch {url}: {reason}",
            details={"url": url},
            original_error=original_error,
        )
        self.url = url


class CacheIOFailure(DataHubError):
    """Reading or writing a snapshot file failed."""

    kind = "cache_io_failure"

    def __init__(self, path: str, original_error: Exception | None = None):
        super().__init__(
            f"Snapshot I/O failed for {path}",
            details={"path": path},
            original_error=original_error,
        )
        self.path = path


class IndexBuildPartialFailure(DataHubError):
    """A single document could not be extracted or tokenized during a build."""

    kind = "index_build_partial_failure"

    def __init__(self, document_key: str, original_error: Exception | None = None):
        super().__init__(
            f"Skipped document {document_key} during index build",
            details={"document_key": document_key},
            original_error=original_error,
        )
        self.document_key = document_key


class InvalidQuery(DataHubError):
    """Query is empty or reduces to no searchable tokens."""

    kind = "invalid_query"
