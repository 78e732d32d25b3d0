from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta

import httpx
import pytest

from conftest import NOW, FakeDeliverer, FakeSummarizer, StaticAdapter, make_artifact, make_record
from orchestrator import HttpHeartbeat
from storage import ContentStore


class _RecordingHeartbeat:
    def __init__(self) -> None:
        self.entered = 0
        self.exited = 0

    @asynccontextmanager
    async def running(self):
        self.entered += 1
        try:
            yield self
        finally:
            self.exited += 1


class _BrokenStore(ContentStore):
    async def query(self, filters=None):
        raise RuntimeError("database is locked")


async def _archive_count(database) -> int:
    async with database.connect() as conn:
        cursor = await conn.execute("SELECT COUNT(*) FROM insights_archive")
        row = await cursor.fetchone()
    return row[0]


@pytest.mark.asyncio
async def test_empty_window_delivers_nothing_notable_and_logs(build_orchestrator, artifact_log, settings) -> None:
    summarizer = FakeSummarizer()
    deliverer = FakeDeliverer()
    orchestrator = build_orchestrator(adapters=[StaticAdapter("quiet", settings=settings)], summarizer=summarizer, deliverer=deliverer)

    artifact = await orchestrator.run_digest()

    assert summarizer.calls == []
    assert len(deliverer.deliveries) == 1
    delivered, weekly = deliverer.deliveries[0]
    assert delivered.nothing_notable is True
    assert delivered.article_count == 0
    assert weekly is None
    assert artifact is not None and artifact.fallback is False
    assert len(await artifact_log.read_recent(10)) == 1

    state = orchestrator.state.snapshot()
    assert state.running is False
    assert state.last_run_at == NOW
    assert state.last_article_count == 0
    assert state.last_delivery.status == "sent"
    assert state.last_error is None


@pytest.mark.asyncio
async def test_full_run_fetches_summarizes_and_archives(build_orchestrator, content_store, database, settings) -> None:
    adapters = [
        StaticAdapter("alpha", [make_record(i, source="alpha") for i in range(5)], settings=settings),
        StaticAdapter("beta", [make_record(i, source="beta") for i in range(3)], settings=settings),
        StaticAdapter("gamma", error=TimeoutError("slow"), settings=settings),
    ]
    summarizer = FakeSummarizer()
    orchestrator = build_orchestrator(adapters=adapters, summarizer=summarizer)

    artifact = await orchestrator.run_digest()

    assert await content_store.count() == 8
    assert len(summarizer.calls[0][0]) == 8
    assert artifact.id is not None
    assert await _archive_count(database) == 1
    state = orchestrator.state.snapshot()
    assert state.last_article_count == 8
    assert state.last_error is None


@pytest.mark.asyncio
async def test_old_records_fall_outside_the_window(build_orchestrator, settings) -> None:
    stale = StaticAdapter("old", [make_record(1, published_at=NOW - timedelta(hours=30))], settings=settings)
    deliverer = FakeDeliverer()
    orchestrator = build_orchestrator(adapters=[stale], deliverer=deliverer)

    await orchestrator.run_digest()

    assert deliverer.deliveries[0][0].nothing_notable is True


@pytest.mark.asyncio
async def test_delivery_failure_still_archives(build_orchestrator, database, artifact_log, settings) -> None:
    adapter = StaticAdapter("alpha", [make_record(1)], settings=settings)
    orchestrator = build_orchestrator(adapters=[adapter], deliverer=FakeDeliverer(error=RuntimeError("smtp down")))

    artifact = await orchestrator.run_digest()

    assert await _archive_count(database) == 1
    logged = await artifact_log.read_recent(1)
    assert logged[0].id == artifact.id
    state = orchestrator.state.snapshot()
    assert state.last_delivery.status == "failed"
    assert "smtp down" in state.last_delivery.error
    assert state.last_error is None


@pytest.mark.asyncio
async def test_summarizer_failure_becomes_fallback(build_orchestrator, settings) -> None:
    deliverer = FakeDeliverer()
    orchestrator = build_orchestrator(
        adapters=[StaticAdapter("alpha", [make_record(1)], settings=settings)],
        summarizer=FakeSummarizer(error=RuntimeError("model overloaded")),
        deliverer=deliverer,
    )

    artifact = await orchestrator.run_digest()

    assert artifact.fallback is True
    assert deliverer.deliveries[0][0].fallback is True
    assert orchestrator.state.snapshot().last_error is None


@pytest.mark.asyncio
async def test_rollup_runs_on_the_rollup_weekday(build_orchestrator, artifact_log, clock, settings) -> None:
    await artifact_log.append(make_artifact(headline="Mon"))
    await artifact_log.append(make_artifact(headline="Tue"))
    clock.now = NOW + timedelta(days=3)  # Friday
    summarizer = FakeSummarizer(bullets=["Theme one", "Theme two"])
    deliverer = FakeDeliverer()
    orchestrator = build_orchestrator(
        adapters=[StaticAdapter("alpha", [make_record(1, published_at=clock.now - timedelta(hours=1))], settings=settings)],
        summarizer=summarizer,
        deliverer=deliverer,
    )

    artifact = await orchestrator.run_digest()

    assert [[a.tldr[0] for a in call] for call in summarizer.rollup_calls] == [["Tue", "Mon"]]
    assert deliverer.deliveries[0][1] == ["Theme one", "Theme two"]
    assert artifact.weekly_summary == ["Theme one", "Theme two"]


@pytest.mark.asyncio
async def test_no_rollup_on_other_days(build_orchestrator, settings) -> None:
    summarizer = FakeSummarizer(bullets=["unused"])
    orchestrator = build_orchestrator(
        adapters=[StaticAdapter("alpha", [make_record(1)], settings=settings)],
        summarizer=summarizer,
    )

    await orchestrator.run_digest()

    assert summarizer.rollup_calls == []


@pytest.mark.asyncio
async def test_same_day_rerun_reuses_archived_artifact(build_orchestrator, database, settings) -> None:
    summarizer = FakeSummarizer()
    orchestrator = build_orchestrator(adapters=[StaticAdapter("alpha", [make_record(1)], settings=settings)], summarizer=summarizer)

    await orchestrator.run_digest()
    await orchestrator.run_digest()

    assert len(summarizer.calls) == 1
    assert await _archive_count(database) == 1


@pytest.mark.asyncio
async def test_wrong_token_is_rejected_without_side_effects(build_orchestrator, settings) -> None:
    adapter = StaticAdapter("alpha", [make_record(1)], settings=settings)
    orchestrator = build_orchestrator(adapters=[adapter])
    before = orchestrator.state.snapshot()

    for token in ("wrong", None, "s3cret "):
        result = orchestrator.trigger(token)
        assert result.accepted is False
        assert result.task is None

    assert orchestrator.state.snapshot() == before
    assert adapter.calls == 0


@pytest.mark.asyncio
async def test_missing_secret_rejects_everything(build_orchestrator, settings) -> None:
    settings.digest.cron_secret = None
    orchestrator = build_orchestrator()

    assert orchestrator.trigger("").accepted is False
    assert orchestrator.trigger("anything").accepted is False


@pytest.mark.asyncio
async def test_accepted_trigger_runs_in_background(build_orchestrator, settings) -> None:
    adapter = StaticAdapter("alpha", [make_record(1)], settings=settings)
    orchestrator = build_orchestrator(adapters=[adapter])

    result = orchestrator.trigger("s3cret")

    assert result.accepted is True
    await result.task
    assert adapter.calls == 1
    assert orchestrator.state.snapshot().last_run_at == NOW


@pytest.mark.asyncio
async def test_unexpected_failure_is_recorded_and_heartbeat_stops(build_orchestrator, database, clock, settings) -> None:
    heartbeat = _RecordingHeartbeat()
    orchestrator = build_orchestrator(
        content_store=_BrokenStore(database, clock=clock),
        heartbeat=heartbeat,
    )

    artifact = await orchestrator.run_digest()

    assert artifact is None
    assert heartbeat.entered == heartbeat.exited == 1
    state = orchestrator.state.snapshot()
    assert state.running is False
    assert "database is locked" in state.last_error


@pytest.mark.asyncio
async def test_http_heartbeat_beats_only_while_running() -> None:
    hits = []

    def _handler(request: httpx.Request) -> httpx.Response:
        hits.append(str(request.url))
        return httpx.Response(200, json={"status": "ok"})

    heartbeat = HttpHeartbeat("http://localhost:3001/health", interval=0.01, transport=httpx.MockTransport(_handler))

    async with heartbeat.running():
        await asyncio.sleep(0.1)
        assert heartbeat.active == 1

    beats = heartbeat.beats
    assert beats >= 1
    assert hits[0] == "http://localhost:3001/health"
    await asyncio.sleep(0.05)
    assert heartbeat.beats == beats
    assert heartbeat.active == 0


@pytest.mark.asyncio
async def test_insights_are_reused_until_refresh(build_orchestrator, content_store) -> None:
    await content_store.upsert(make_record(1, category="mortgage"))
    summarizer = FakeSummarizer()
    orchestrator = build_orchestrator(summarizer=summarizer)

    first = await orchestrator.get_or_generate_insights("mortgage")
    second = await orchestrator.get_or_generate_insights("mortgage")
    await orchestrator.get_or_generate_insights("mortgage", refresh=True)

    assert first.id == second.id
    assert len(summarizer.calls) == 2


@pytest.mark.asyncio
async def test_sweep_uses_retention_setting(build_orchestrator, content_store) -> None:
    await content_store.upsert(make_record(1, published_at=NOW - timedelta(days=91)))
    await content_store.upsert(make_record(2))

    assert await build_orchestrator().sweep() == 1


class _SlowAdapter(StaticAdapter):
    async def fetch(self):
        await asyncio.sleep(0.02)
        return await super().fetch()


@pytest.mark.asyncio
async def test_overlapping_fetches_share_one_width(build_orchestrator, settings) -> None:
    adapters = [_SlowAdapter(f"slow{i}", [make_record(i, source=f"slow{i}")], settings=settings) for i in range(6)]
    orchestrator = build_orchestrator(adapters=adapters)

    first, second = await asyncio.gather(orchestrator.fetch_now(), orchestrator.fetch_now())

    assert first.total == second.total == 6
    assert orchestrator.limiter.width == settings.fetch.concurrency == 2
    assert orchestrator.limiter.peak_in_flight == 2


@pytest.mark.asyncio
async def test_failed_run_keeps_last_count_and_delivery(build_orchestrator, database, clock, settings) -> None:
    orchestrator = build_orchestrator(adapters=[StaticAdapter("alpha", [make_record(1)], settings=settings)])
    await orchestrator.run_digest()

    orchestrator.content_store = _BrokenStore(database, clock=clock)
    clock.advance(hours=1)
    assert await orchestrator.run_digest() is None

    state = orchestrator.state.snapshot()
    assert state.last_run_at == clock.now
    assert state.last_article_count == 1
    assert state.last_delivery.status == "sent"
    assert "database is locked" in state.last_error
