"""Identity provider federation: differ, metadata fetcher, service and synchronizer."""
from .differ import FederationDiff, diff, passes_filters
from .fetcher import HttpMetadataFetcher, MetadataFetcher
from .service import FederationService
from .sync import FederationSynchronizer, SyncResult

__all__ = [
    "FederationDiff",
    "FederationService",
    "FederationSynchronizer",
    "HttpMetadataFetcher",
    "MetadataFetcher",
    "SyncResult",
    "diff",
    "passes_filters",
]
