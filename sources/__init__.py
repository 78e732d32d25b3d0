"""Source catalog and fetch phase."""

from .catalog import FeedSource, SourceCatalog, build_adapters, load_catalog
from .connectors import FetchReport, fetch_sources

__all__ = [
    "FeedSource",
    "SourceCatalog",
    "build_adapters",
    "load_catalog",
    "FetchReport",
    "fetch_sources",
]
