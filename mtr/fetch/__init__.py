"""Source fetching for HAL packages"""

from mtr.fetch.fetcher import FetchFailure, FetchResult, SourceFetcher, SourceFile
from mtr.fetch.sources import (
    GitHubSource,
    LocalSource,
    SourceBackend,
    SourceReadError,
    SourceUnavailableError,
    backend_for,
)

__all__ = [
    "FetchFailure",
    "FetchResult",
    "SourceFetcher",
    "SourceFile",
    "GitHubSource",
    "LocalSource",
    "SourceBackend",
    "SourceReadError",
    "SourceUnavailableError",
    "backend_for",
]
