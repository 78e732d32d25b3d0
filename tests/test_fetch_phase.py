from __future__ import annotations

import pytest

from conftest import StaticAdapter, make_record
from sources import build_adapters, fetch_sources, load_catalog
from utils.concurrency import ConcurrencyLimiter
from utils.retry import RetryPolicy


@pytest.mark.asyncio
async def test_one_failing_source_degrades_only_its_share(settings, content_store) -> None:
    alpha = StaticAdapter("alpha", [make_record(i, source="alpha") for i in range(5)], settings=settings)
    beta = StaticAdapter("beta", [make_record(i, source="beta") for i in range(3)], settings=settings)
    gamma = StaticAdapter("gamma", error=TimeoutError("timed out"), settings=settings)

    report = await fetch_sources(
        [alpha, beta, gamma],
        limiter=ConcurrencyLimiter(width=2),
        policy=RetryPolicy(max_attempts=3, base_delay=0.0),
        store=content_store,
    )

    assert report.total == 8
    assert report.stored == 8
    assert report.per_source == {"alpha": 5, "beta": 3, "gamma": 0}
    assert set(report.failed_sources) == {"gamma"}
    assert gamma.calls == 3
    assert alpha.calls == 1
    assert await content_store.count() == 8


@pytest.mark.asyncio
async def test_all_sources_failing_returns_empty_report(settings) -> None:
    adapters = [StaticAdapter(f"s{i}", error=ConnectionError("down"), settings=settings) for i in range(3)]

    report = await fetch_sources(adapters, policy=RetryPolicy(max_attempts=1, base_delay=0.0))

    assert report.total == 0
    assert len(report.failed_sources) == 3


def test_catalog_builds_feed_and_newsroom_adapters(tmp_path, settings) -> None:
    catalog_path = tmp_path / "sources.json"
    catalog_path.write_text(
        """
        {
          "sources": [
            {"name": "HousingWire", "rss": "https://example.com/hw.xml", "category": "mortgage"},
            {"name": "Channel", "rss": "https://youtube.com/feeds/x", "category": "product-management", "type": "youtube"},
            {"name": "Disabled", "rss": "", "category": "mortgage"}
          ],
          "scrapers": ["rocket", "unknown"]
        }
        """,
        encoding="utf-8",
    )

    adapters = build_adapters(load_catalog(catalog_path), settings)

    assert [adapter.name for adapter in adapters] == ["HousingWire", "Channel", "Rocket Companies Newsroom"]
    assert adapters[1].kind.value == "youtube"


def test_missing_catalog_is_empty(tmp_path) -> None:
    catalog = load_catalog(tmp_path / "nope.json")
    assert catalog.sources == []
    assert catalog.scrapers == []
