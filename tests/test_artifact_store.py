from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW, make_artifact
from core import Artifact
from storage import ArtifactStore, MemoryCache


async def _archive_rows(database, category: str):
    async with database.connect() as conn:
        cursor = await conn.execute("SELECT * FROM insights_archive WHERE category = ?", (category,))
        return await cursor.fetchall()


@pytest.mark.asyncio
async def test_second_save_in_collision_window_updates_in_place(artifact_store, database, clock) -> None:
    first_id = await artifact_store.save(make_artifact("alpha", headline="First take"), "alpha")
    clock.advance(minutes=10)
    second_id = await artifact_store.save(make_artifact("alpha", headline="Second take", generated_at=clock()), "alpha")

    rows = await _archive_rows(database, "alpha")
    assert len(rows) == 1
    assert first_id == second_id == rows[0]["id"]
    assert "Second take" in rows[0]["tldr"]


@pytest.mark.asyncio
async def test_categories_are_archived_separately(artifact_store, database) -> None:
    await artifact_store.save(make_artifact("alpha"), "alpha")
    await artifact_store.save(make_artifact("beta"), "beta")

    assert len(await _archive_rows(database, "alpha")) == 1
    assert len(await _archive_rows(database, "beta")) == 1


@pytest.mark.asyncio
async def test_collision_window_spans_civil_days(artifact_store, database, clock) -> None:
    await artifact_store.save(make_artifact("alpha"), "alpha")

    clock.advance(days=2)
    await artifact_store.save(make_artifact("alpha", headline="Two days later", generated_at=clock()), "alpha")
    assert len(await _archive_rows(database, "alpha")) == 1

    clock.advance(days=3)
    await artifact_store.save(make_artifact("alpha", headline="Five days later", generated_at=clock()), "alpha")
    assert len(await _archive_rows(database, "alpha")) == 2


@pytest.mark.asyncio
async def test_utc_midnight_inside_one_civil_day_keeps_one_row(database) -> None:
    # 19:00 and 21:00 in New York fall on both sides of UTC midnight
    now = {"value": datetime(2026, 3, 10, 23, 0, tzinfo=timezone.utc)}
    store = ArtifactStore(database, timezone="America/New_York", collision_days=1, clock=lambda: now["value"])

    await store.save(make_artifact("alpha", generated_at=now["value"]), "alpha")
    now["value"] = datetime(2026, 3, 11, 1, 0, tzinfo=timezone.utc)
    await store.save(make_artifact("alpha", headline="Later", generated_at=now["value"]), "alpha")

    assert len(await _archive_rows(database, "alpha")) == 1
    store.evict()
    fresh = await store.get_fresh("alpha", same_day=True)
    assert fresh is not None and fresh.tldr == ["Later"]


@pytest.mark.asyncio
async def test_aggregate_and_empty_artifacts_are_cached_not_archived(artifact_store, database) -> None:
    assert await artifact_store.save(make_artifact("all"), "all") is None
    assert await artifact_store.save(Artifact(category="alpha", nothing_notable=True, generated_at=NOW), "alpha") is None

    assert await _archive_rows(database, "all") == []
    assert await _archive_rows(database, "alpha") == []
    assert (await artifact_store.get_fresh("all")) is not None
    assert (await artifact_store.get_fresh("alpha")).nothing_notable is True


@pytest.mark.asyncio
async def test_archive_false_only_caches(artifact_store, database) -> None:
    assert await artifact_store.save(make_artifact("alpha"), "alpha", archive=False) is None
    assert await _archive_rows(database, "alpha") == []


@pytest.mark.asyncio
async def test_get_fresh_respects_long_window(artifact_store, clock) -> None:
    await artifact_store.save(make_artifact("alpha"), "alpha")

    clock.advance(days=6)
    artifact_store.evict("alpha")
    fresh = await artifact_store.get_fresh("alpha")
    assert fresh is not None
    assert fresh.id is not None
    assert artifact_store.cache.exists("alpha")

    clock.advance(days=2)
    artifact_store.evict()
    assert await artifact_store.get_fresh("alpha") is None


@pytest.mark.asyncio
async def test_get_fresh_same_day_window(artifact_store, clock) -> None:
    await artifact_store.save(make_artifact("alpha"), "alpha")
    assert await artifact_store.get_fresh("alpha", same_day=True) is not None

    # next civil day in New York, still inside the long window
    clock.advance(hours=14)
    assert await artifact_store.get_fresh("alpha", same_day=True) is None
    assert await artifact_store.get_fresh("alpha") is not None


@pytest.mark.asyncio
async def test_stale_cache_entry_falls_through_to_window_check(database, clock) -> None:
    store = ArtifactStore(database, cache=MemoryCache(ttl=None, clock=clock), fresh_days=1, clock=clock)
    await store.save(make_artifact("alpha"), "alpha", archive=False)

    clock.advance(days=2)
    assert await store.get_fresh("alpha") is None


@pytest.mark.asyncio
async def test_evict_leaves_archive_untouched(artifact_store, database) -> None:
    await artifact_store.save(make_artifact("alpha"), "alpha")
    artifact_store.evict()

    assert artifact_store.cache.size() == 0
    assert len(await _archive_rows(database, "alpha")) == 1


@pytest.mark.asyncio
async def test_history_excludes_current_civil_day(artifact_store, clock) -> None:
    clock.now = NOW - timedelta(days=5)
    old_id = await artifact_store.save(make_artifact("alpha", headline="Servicer merger wave", generated_at=clock()), "alpha")
    clock.now = NOW
    today_id = await artifact_store.save(make_artifact("beta", headline="Today only"), "beta")

    history = await artifact_store.list_history()
    assert [item.id for item in history] == [old_id]
    assert history[0].tldr == ["Servicer merger wave"]
    assert history[0].top_insights[0].headline == "Servicer merger wave"

    assert (await artifact_store.get_by_id(old_id)).category == "alpha"
    assert await artifact_store.get_by_id(today_id) is None

    assert [item.id for item in await artifact_store.search("MERGER")] == [old_id]
    assert await artifact_store.search("today only") == []
    assert await artifact_store.list_history(category="beta") == []


@pytest.mark.asyncio
async def test_daily_digest_keeps_one_row_per_day(artifact_store, database, clock) -> None:
    ids = []
    for day in range(7):
        ids.append(await artifact_store.save(make_artifact("digest", headline=f"Day {day}", generated_at=clock())))
        clock.advance(days=1)
    clock.advance(days=-1)

    rows = await _archive_rows(database, "digest")
    assert len(rows) == 7
    assert len(set(ids)) == 7

    history = await artifact_store.list_history(category="digest")
    assert [item.tldr for item in history] == [[f"Day {day}"] for day in range(5, -1, -1)]


@pytest.mark.asyncio
async def test_updates_do_not_slide_the_collision_window(artifact_store, database, clock) -> None:
    # alpha merges across 3 civil days; each daily update keeps the row's original window
    for day in range(7):
        await artifact_store.save(make_artifact("alpha", headline=f"Day {day}", generated_at=clock()), "alpha")
        clock.advance(days=1)

    rows = await _archive_rows(database, "alpha")
    assert [row["tldr"] for row in sorted(rows, key=lambda row: row["id"])] == ['["Day 2"]', '["Day 5"]', '["Day 6"]']


@pytest.mark.asyncio
async def test_rows_without_window_start_still_match(artifact_store, database, clock) -> None:
    async with database.connect() as conn:
        await conn.execute(
            "INSERT INTO insights_archive (category, tldr, generated_at) VALUES (?, ?, ?)",
            ("alpha", '["legacy"]', NOW.isoformat(timespec="seconds")),
        )

    clock.advance(hours=1)
    await artifact_store.save(make_artifact("alpha", headline="Fresh", generated_at=clock()), "alpha")

    rows = await _archive_rows(database, "alpha")
    assert len(rows) == 1
    assert rows[0]["tldr"] == '["Fresh"]'
    assert rows[0]["window_start"] is not None
