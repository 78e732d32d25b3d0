"""Source catalog: which feeds and newsroom pages make up one fetch phase."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from core import RecordKind
from scrapers import SCRAPER_REGISTRY, BaseSourceAdapter, FeedScraper


logger = logging.getLogger(__name__)


class FeedSource(BaseModel):
    name: str
    rss: str
    category: str = ""
    type: Optional[str] = None
    max_items: Optional[int] = None

    @property
    def kind(self) -> RecordKind:
        return RecordKind.MEDIA if str(self.type or "").lower() == RecordKind.MEDIA.value else RecordKind.STANDARD


class SourceCatalog(BaseModel):
    sources: List[FeedSource] = Field(default_factory=list)
    scrapers: List[str] = Field(default_factory=list)


def load_catalog(path: str | Path) -> SourceCatalog:
    """Read the JSON catalog; a missing or invalid file yields an empty catalog."""
    target = Path(path)
    try:
        payload = json.loads(target.read_text(encoding="utf-8"))
        return SourceCatalog.model_validate(payload)
    except FileNotFoundError:
        logger.warning("[Catalog] %s not found, no sources configured", target)
    except (json.JSONDecodeError, ValidationError) as exc:
        logger.error("[Catalog] invalid catalog %s: %s", target, exc)
    return SourceCatalog()


def build_adapters(catalog: SourceCatalog, settings=None) -> List[BaseSourceAdapter]:
    """Instantiate one adapter per feed and per enabled newsroom scraper."""
    adapters: List[BaseSourceAdapter] = []
    for source in catalog.sources:
        adapters.append(
            FeedScraper(
                name=source.name,
                url=source.rss,
                category=source.category,
                kind=source.kind,
                max_items=source.max_items,
                settings=settings,
            )
        )
    for key in catalog.scrapers:
        scraper_cls = SCRAPER_REGISTRY.get(str(key).strip().lower())
        if scraper_cls is None:
            logger.warning("[Catalog] unknown scraper '%s' ignored", key)
            continue
        adapters.append(scraper_cls(settings=settings))
    return [adapter for adapter in adapters if adapter.is_configured()]
