"""Two-tier artifact cache: volatile LRU in front of the SQLite archive."""

from __future__ import annotations

from datetime import datetime, timedelta
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from core import Artifact, Insight, Signal, WorthReading
from utils.clock import DEFAULT_TIMEZONE, from_iso, resolve_tz, start_of_civil_day, to_iso, utcnow
from utils.exceptions import ArchiveError
from .cache import MemoryCache
from .database import Database


logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20


def _dump(items: List[Any]) -> str:
    return json.dumps(
        [item.model_dump() if hasattr(item, "model_dump") else item for item in items],
        ensure_ascii=False,
    )


def _load(raw: Optional[str]) -> List[Any]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


def row_to_artifact(row: Any) -> Artifact:
    keys = row.keys()
    return Artifact(
        id=row["id"],
        category=row["category"],
        tldr=[str(item) for item in _load(row["tldr"])],
        signals=[Signal.model_validate(item) for item in _load(row["signals"]) if isinstance(item, dict)],
        top_insights=[Insight.model_validate(item) for item in _load(row["themes"]) if isinstance(item, dict)],
        worth_reading=[
            WorthReading.model_validate(item)
            for item in _load(row["worth_reading"] if "worth_reading" in keys else None)
            if isinstance(item, dict)
        ],
        article_count=int(row["article_count"] or 0),
        source_count=int(row["source_count"] or 0) if "source_count" in keys else 0,
        date_range_start=from_iso(row["date_range_start"]),
        date_range_end=from_iso(row["date_range_end"]),
        generated_at=from_iso(row["generated_at"]) or utcnow(),
    )


class ArtifactStore:
    """
    Artifact cache and archive, keyed by category.

    Reads try the volatile cache, then the newest archive row inside the
    freshness window. Writes always land in the cache; archived writes for the
    same category inside the collision window update one row in place.
    """

    def __init__(
        self,
        database: Database,
        *,
        cache: Optional[MemoryCache] = None,
        timezone: str = DEFAULT_TIMEZONE,
        fresh_days: int = 7,
        collision_days: int = 3,
        category_collision_days: Optional[Dict[str, int]] = None,
        aggregate_category: str = "all",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = database
        self._clock = clock
        self.cache = cache if cache is not None else MemoryCache(ttl=6 * 3600, max_size=32, clock=clock)
        self.tz = resolve_tz(timezone)
        self.fresh_days = max(0, int(fresh_days))
        self.collision_days = max(1, int(collision_days))
        self.category_collision_days = {
            key: max(1, int(days)) for key, days in (category_collision_days or {}).items()
        }
        self.aggregate_category = aggregate_category

    # ------------------------------------------------------------------
    # windows
    # ------------------------------------------------------------------
    def freshness_start(self, same_day: bool = False) -> datetime:
        now = self._clock()
        if same_day:
            return start_of_civil_day(now, self.tz)
        return now - timedelta(days=self.fresh_days)

    def collision_days_for(self, category: Optional[str] = None) -> int:
        return self.category_collision_days.get(category or "", self.collision_days)

    def collision_start(self, category: Optional[str] = None) -> datetime:
        """Rows whose window opened at or after this instant absorb a new save."""
        return start_of_civil_day(self._clock(), self.tz, days_back=self.collision_days_for(category) - 1)

    def history_end(self) -> datetime:
        return start_of_civil_day(self._clock(), self.tz)

    # ------------------------------------------------------------------
    # cache + archive
    # ------------------------------------------------------------------
    async def get_fresh(self, category: str, same_day: bool = False) -> Optional[Artifact]:
        """Newest artifact generated inside the window, or None."""
        window_start = self.freshness_start(same_day)

        cached = self.cache.get(category)
        if isinstance(cached, Artifact) and cached.generated_at >= window_start:
            logger.debug("[Artifacts] cache hit for %s", category)
            return cached

        async with self._db.connect() as conn:
            cursor = await conn.execute(
                "SELECT * FROM insights_archive WHERE category = ? AND generated_at >= ? "
                "ORDER BY generated_at DESC LIMIT 1",
                (category, to_iso(window_start)),
            )
            row = await cursor.fetchone()

        if row is None:
            return None

        artifact = row_to_artifact(row)
        self.cache.set(category, artifact)
        logger.info("[Artifacts] archive hit for %s (row %s)", category, artifact.id)
        return artifact

    async def save(self, artifact: Artifact, category: Optional[str] = None, archive: bool = True) -> Optional[int]:
        """
        Cache the artifact and, when eligible, archive it.

        Returns the archive row id, or None when persistence was skipped.
        Raises ArchiveError if the archive write fails; the cache write has
        already happened by then.
        """
        category = category or artifact.category
        artifact = artifact.model_copy(update={"category": category})
        self.cache.set(category, artifact)

        if not archive:
            return None
        if category == self.aggregate_category:
            logger.debug("[Artifacts] aggregate category %s is not archived", category)
            return None
        if artifact.is_empty:
            logger.info("[Artifacts] skipping archive for empty %s artifact", category)
            return None

        row_id = await self._archive(artifact, category)
        self.cache.set(category, artifact.model_copy(update={"id": row_id}))
        return row_id

    async def _archive(self, artifact: Artifact, category: str) -> int:
        """
        Update-or-insert inside one BEGIN IMMEDIATE transaction.

        A row's ``window_start`` is the civil day it was first written and never
        moves, so repeated updates cannot drag an old row into later windows.
        """
        fields = (
            _dump(artifact.tldr),
            _dump(artifact.signals),
            _dump(artifact.top_insights),
            _dump(artifact.worth_reading),
            int(artifact.article_count),
            int(artifact.source_count),
            to_iso(artifact.date_range_start),
            to_iso(artifact.date_range_end),
            to_iso(artifact.generated_at),
        )
        window_start = to_iso(start_of_civil_day(self._clock(), self.tz))
        try:
            async with self._db.connect() as conn:
                await conn.execute("BEGIN IMMEDIATE")
                try:
                    # rows written before window_start existed fall back to generated_at
                    cursor = await conn.execute(
                        "SELECT id FROM insights_archive WHERE category = ? "
                        "AND COALESCE(window_start, generated_at) >= ? "
                        "ORDER BY COALESCE(window_start, generated_at) DESC, id DESC LIMIT 1",
                        (category, to_iso(self.collision_start(category))),
                    )
                    existing = await cursor.fetchone()
                    if existing is not None:
                        row_id = int(existing["id"])
                        await conn.execute(
                            "UPDATE insights_archive SET tldr = ?, signals = ?, themes = ?, worth_reading = ?, "
                            "article_count = ?, source_count = ?, date_range_start = ?, date_range_end = ?, "
                            "generated_at = ?, window_start = COALESCE(window_start, ?) WHERE id = ?",
                            (*fields, window_start, row_id),
                        )
                        action = "updated"
                    else:
                        cursor = await conn.execute(
                            "INSERT INTO insights_archive (tldr, signals, themes, worth_reading, article_count, "
                            "source_count, date_range_start, date_range_end, generated_at, window_start, category) "
                            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                            (*fields, window_start, category),
                        )
                        row_id = int(cursor.lastrowid)
                        action = "inserted"
                    await conn.execute("COMMIT")
                except Exception:
                    await conn.execute("ROLLBACK")
                    raise
        except Exception as exc:
            raise ArchiveError(f"failed to archive {category} artifact", details={"error": str(exc)}) from exc

        logger.info("[Artifacts] %s archive row %d for %s", action, row_id, category)
        return row_id

    def evict(self, category: Optional[str] = None) -> None:
        """Drop volatile entries (one category or all); the archive is untouched."""
        if category:
            self.cache.delete(category)
        else:
            self.cache.clear()
        logger.info("[Artifacts] evicted cache for %s", category or "all categories")

    # ------------------------------------------------------------------
    # history (strictly before the current civil day)
    # ------------------------------------------------------------------
    async def list_history(
        self,
        category: Optional[str] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
        offset: int = 0,
    ) -> List[Artifact]:
        clauses = ["generated_at < ?"]
        params: List[Any] = [to_iso(self.history_end())]
        if category:
            clauses.append("category = ?")
            params.append(category)
        params.extend([max(1, int(limit)), max(0, int(offset))])

        async with self._db.connect() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM insights_archive WHERE {' AND '.join(clauses)} "
                "ORDER BY generated_at DESC LIMIT ? OFFSET ?",
                params,
            )
            rows = await cursor.fetchall()
        return [row_to_artifact(row) for row in rows]

    async def get_by_id(self, artifact_id: int) -> Optional[Artifact]:
        async with self._db.connect() as conn:
            cursor = await conn.execute(
                "SELECT * FROM insights_archive WHERE id = ? AND generated_at < ?",
                (int(artifact_id), to_iso(self.history_end())),
            )
            row = await cursor.fetchone()
        return row_to_artifact(row) if row else None

    async def search(self, keyword: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Artifact]:
        text = str(keyword or "").strip().lower()
        if not text:
            return []
        pattern = f"%{text}%"
        async with self._db.connect() as conn:
            cursor = await conn.execute(
                "SELECT * FROM insights_archive WHERE generated_at < ? AND "
                "(LOWER(tldr) LIKE ? OR LOWER(signals) LIKE ? OR LOWER(themes) LIKE ?) "
                "ORDER BY generated_at DESC LIMIT ?",
                (to_iso(self.history_end()), pattern, pattern, pattern, max(1, int(limit))),
            )
            rows = await cursor.fetchall()
        return [row_to_artifact(row) for row in rows]
