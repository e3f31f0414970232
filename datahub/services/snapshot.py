"""Whole-file JSON snapshots for the cache and the search index.

Each write replaces the file completely. There is no journal, so a crash
mid-write can lose everything written since the previous successful save.
"""

import json
import logging
from pathlib import Path
from typing import Any

from datahub.core.errors import CacheIOFailure

logger = logging.getLogger(__name__)


class JsonSnapshot:
    """Read/overwrite a single JSON document on disk.

    A snapshot with ``path=None`` keeps nothing on disk (used by tests and
    by in-memory deployments).
    """

    def __init__(self, path: Path | str | None) -> None:
        self.path = Path(path) if path is not None else None

    def load(self) -> Any:
        """Return the decoded document, or None when the file does not exist.

        Raises CacheIOFailure if the file exists but cannot be read or parsed.
        """
        if self.path is None or not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise CacheIOFailure(str(self.path), e) from e

    def save(self, data: Any) -> None:
        """Overwrite the file with ``data``. Raises CacheIOFailure on error."""
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            raise CacheIOFailure(str(self.path), e) from e

    def load_or_default(self, default: Any) -> Any:
        """Load the snapshot, falling back to ``default`` on any failure."""
        try:
            data = self.load()
        except CacheIOFailure as e:
            logger.error("Error loading snapshot %s: %s", e.path, e.original_error)
            return default
        return default if data is None else data

    def save_quietly(self, data: Any) -> bool:
        """Save the snapshot, logging instead of raising. Returns success."""
        try:
            self.save(data)
        except CacheIOFailure as e:
            logger.error("Error saving snapshot %s: %s", e.path, e.original_error)
            return False
        return True
