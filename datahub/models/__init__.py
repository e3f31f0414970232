from datahub.models.cache_entry import CacheEntry
from datahub.models.index import IndexPosting, SearchIndex
from datahub.models.rate_window import RateWindow
from datahub.models.source import SourceCategory

__all__ = ["CacheEntry", "IndexPosting", "RateWindow", "SearchIndex", "SourceCategory"]
