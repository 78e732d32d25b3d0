from __future__ import annotations

import pytest

from scrapers import (
    SCRAPER_REGISTRY,
    BlendNewsroomScraper,
    EntryCollector,
    ICEMortgageTechScraper,
    RocketPressReleasesScraper,
    base as base_module,
)


ROCKET_HTML = """
<html><body>
  <ul>
    <li>
      <time datetime="2026-03-09">March 9, 2026</time>
      <a href="/press-release/rocket-launches-ai-underwriting">Rocket launches AI underwriting assistant</a>
    </li>
    <li>
      <a href="/press-release/rocket-launches-ai-underwriting-copy">Rocket launches AI underwriting assistant</a>
    </li>
    <li><a href="/press-release/tiny">Short</a></li>
    <li><a href="https://rocketcompanies.com/press-release/q4-results">Rocket Companies reports fourth quarter results</a></li>
  </ul>
</body></html>
"""

ICE_HTML = """
<html><body><table>
  <tr><th>Date</th><th>Title</th><th>Category</th></tr>
  <tr>
    <td>03/05/2026</td>
    <td><a href="/news/ice-mortgage-monitor">ICE Mortgage Monitor: delinquencies fall again</a></td>
    <td>Mortgage Technology</td>
  </tr>
  <tr>
    <td>03/04/2026</td>
    <td><a href="/news/futures-volume">ICE reports record futures volume</a></td>
    <td>Exchanges</td>
  </tr>
</table></body></html>
"""

BLEND_HTML = """
<html><body>
  <div class="card">
    <a href="https://www.businesswire.com/news/home/blend-q4">
      <h3>Blend announces fourth quarter results</h3>
    </a>
  </div>
  <div class="card"><a href="https://blend.com/careers">Careers at Blend for engineers</a></div>
</body></html>
"""


def test_duplicate_titles_collapse_to_one(settings) -> None:
    records = RocketPressReleasesScraper(settings=settings).parse_html(ROCKET_HTML)

    titles = [record.title for record in records]
    assert titles == [
        "Rocket launches AI underwriting assistant",
        "Rocket Companies reports fourth quarter results",
    ]
    assert records[0].link == "https://rocketcompanies.com/press-release/rocket-launches-ai-underwriting"
    assert records[0].published_at.date().isoformat() == "2026-03-09"
    assert records[0].category == "competitor-intel"


def test_ice_keeps_only_mortgage_rows(settings) -> None:
    records = ICEMortgageTechScraper(settings=settings).parse_html(ICE_HTML)

    assert len(records) == 1
    assert records[0].title.startswith("ICE Mortgage Monitor")
    assert records[0].link == "https://ice.com/news/ice-mortgage-monitor"
    assert records[0].published_at.date().isoformat() == "2026-03-05"


def test_blend_reads_card_headings(settings) -> None:
    records = BlendNewsroomScraper(settings=settings).parse_html(BLEND_HTML)

    assert [record.title for record in records] == ["Blend announces fourth quarter results"]
    assert records[0].source == "Blend Newsroom"


def test_entry_collector_guards() -> None:
    collector = EntryCollector(max_items=3, base_url="https://example.com")

    assert collector.add("A perfectly fine headline", "/a") is True
    assert collector.add("", "/b") is False
    assert collector.add("Headline without link", None) is False
    assert collector.add("too short", "/c") is False
    assert collector.add("Different headline same link", "https://example.com/a") is False
    assert collector.add("x" * 250, "/long") is True
    assert len(collector.entries[-1]["title"]) == 200


@pytest.mark.asyncio
async def test_fetch_uses_page_url(monkeypatch, settings) -> None:
    requested = []

    async def _fake_get_text(url: str, *, headers=None, timeout: float = 15.0) -> str:
        requested.append((url, timeout))
        return ROCKET_HTML

    monkeypatch.setattr(base_module, "_http_get_text", _fake_get_text)

    records = await RocketPressReleasesScraper(settings=settings).fetch()

    assert requested == [("https://rocketcompanies.com/press-releases/", 15.0)]
    assert len(records) == 2


def test_registry_has_known_newsrooms() -> None:
    assert {"rocket", "blend", "ice"} <= set(SCRAPER_REGISTRY)
