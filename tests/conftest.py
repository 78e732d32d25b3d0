from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

import pytest

from config import (
    DigestSettings,
    EmailSettings,
    FetchSettings,
    GeneralSettings,
    LLMSettings,
    Settings,
    StorageSettings,
)
from core import Artifact, DeliveryStatus, Insight, Record
from orchestrator import DigestOrchestrator, RunStateTracker
from scrapers import BaseSourceAdapter
from storage import ArtifactLog, ArtifactStore, ContentStore, Database, MemoryCache


# Tuesday 11:00 in New York (EDT)
NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_record(index: int, *, source: str = "feed", category: str = "mortgage", published_at: Optional[datetime] = None, **kwargs) -> Record:
    return Record(
        link=f"https://example.com/{source}/{index}",
        title=kwargs.pop("title", f"{source} story {index}"),
        source=source,
        category=category,
        summary=kwargs.pop("summary", f"summary {index}..."),
        published_at=published_at or NOW - timedelta(hours=1),
        **kwargs,
    )


def make_artifact(category: str = "digest", *, headline: str = "Rates move", generated_at: Optional[datetime] = None, **kwargs) -> Artifact:
    return Artifact(
        category=category,
        tldr=kwargs.pop("tldr", [headline]),
        top_insights=kwargs.pop("top_insights", [Insight(headline=headline, url="https://example.com/i")]),
        article_count=kwargs.pop("article_count", 3),
        source_count=kwargs.pop("source_count", 2),
        generated_at=generated_at or NOW,
        **kwargs,
    )


class StaticAdapter(BaseSourceAdapter):
    """Returns fixed records or raises the configured error on every call."""

    def __init__(self, name: str, records: Sequence[Record] = (), error: Optional[Exception] = None, settings=None):
        super().__init__(settings)
        self._name = name
        self.records = list(records)
        self.error = error
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def fetch(self) -> List[Record]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.records)


class FakeSummarizer:
    def __init__(self, bullets: Optional[List[str]] = None, error: Optional[Exception] = None) -> None:
        self.calls: List[tuple] = []
        self.rollup_calls: List[List[Artifact]] = []
        self.bullets = bullets or []
        self.error = error

    async def summarize(self, records, category):
        self.calls.append((list(records), category))
        if self.error is not None:
            raise self.error
        return make_artifact(category, headline=f"{len(records)} stories", article_count=len(records))

    async def rollup(self, artifacts):
        self.rollup_calls.append(list(artifacts))
        return list(self.bullets)


class FakeDeliverer:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.deliveries: List[tuple] = []
        self.error = error

    async def deliver(self, artifact, weekly_bullets=None):
        self.deliveries.append((artifact, weekly_bullets))
        if self.error is not None:
            raise self.error
        return DeliveryStatus.sent("msg_1")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        general=GeneralSettings(timezone="America/New_York"),
        fetch=FetchSettings(concurrency=2, max_attempts=3, retry_base_delay=0.0, sources_file=str(tmp_path / "sources.json")),
        storage=StorageSettings(db_path=str(tmp_path / "signal.db"), artifact_log_path=str(tmp_path / "archive.jsonl")),
        digest=DigestSettings(cron_secret="s3cret", scheduler_enabled=False, heartbeat_url=None),
        llm=LLMSettings(anthropic_api_key=None),
        email=EmailSettings(resend_api_key=None, to=None),
    )


@pytest.fixture
def database(settings) -> Database:
    return Database(settings.storage.db_path)


@pytest.fixture
def content_store(database, clock) -> ContentStore:
    return ContentStore(database, query_limit=100, clock=clock)


@pytest.fixture
def artifact_store(database, clock) -> ArtifactStore:
    return ArtifactStore(
        database,
        cache=MemoryCache(ttl=6 * 3600, max_size=8, clock=clock),
        timezone="America/New_York",
        fresh_days=7,
        collision_days=3,
        category_collision_days={"digest": 1},
        clock=clock,
    )


@pytest.fixture
def artifact_log(settings) -> ArtifactLog:
    return ArtifactLog(settings.storage.artifact_log_path)


@pytest.fixture
def build_orchestrator(settings, content_store, artifact_store, artifact_log, clock):
    def _build(adapters=(), summarizer=None, deliverer=None, **kwargs) -> DigestOrchestrator:
        return DigestOrchestrator(
            adapters=list(adapters),
            content_store=kwargs.pop("content_store", content_store),
            artifact_store=artifact_store,
            artifact_log=artifact_log,
            summarizer=summarizer or FakeSummarizer(),
            deliverer=deliverer or FakeDeliverer(),
            settings=settings,
            state=RunStateTracker(),
            clock=clock,
            **kwargs,
        )

    return _build
