"""Web crawler components for fetching and extracting page data."""

from .fetcher import Fetcher, FetchResult
from .extractor import ContentExtractor

__all__ = ["Fetcher", "FetchResult", "ContentExtractor"]
