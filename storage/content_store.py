"""Idempotent record store keyed by canonical link."""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Any, Callable, List, Optional

from core import Record, RecordKind, RecordQuery
from utils.clock import from_iso, to_iso, utcnow
from utils.exceptions import StorageError
from .database import Database


logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 5000
DEFAULT_QUERY_LIMIT = 100

_UPSERT_SQL = """
INSERT INTO articles (link, title, source, category, kind, summary, original_content, image_url, pub_date, first_seen_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(link) DO UPDATE SET
    title = excluded.title,
    summary = excluded.summary,
    original_content = excluded.original_content,
    image_url = excluded.image_url
"""


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_record(row: Any) -> Record:
    try:
        kind = RecordKind(row["kind"])
    except ValueError:
        kind = RecordKind.STANDARD
    return Record(
        link=row["link"],
        title=row["title"],
        source=row["source"] or "",
        category=row["category"] or "",
        kind=kind,
        summary=row["summary"] or "",
        content=row["original_content"] or "",
        image_url=row["image_url"],
        published_at=from_iso(row["pub_date"]),
        first_seen_at=from_iso(row["first_seen_at"]),
    )


class ContentStore:
    """
    At most one row per canonical link.

    Re-upserting a link overwrites title, excerpts and media only; identity
    and first-seen time are never touched.
    """

    def __init__(
        self,
        database: Database,
        *,
        query_limit: int = DEFAULT_QUERY_LIMIT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db = database
        self.query_limit = max(1, int(query_limit))
        self._clock = clock

    async def upsert(self, record: Record) -> None:
        link = str(record.link or "").strip()
        if not link:
            raise StorageError("record link is required", details={"title": record.title})

        first_seen = record.first_seen_at or self._clock()
        params = (
            link,
            record.title or "",
            record.source or "",
            record.category or "",
            record.kind.value,
            (record.summary or "")[:MAX_CONTENT_LENGTH],
            (record.content or "")[:MAX_CONTENT_LENGTH],
            record.image_url,
            to_iso(record.published_at),
            to_iso(first_seen),
        )
        async with self._db.connect() as conn:
            await conn.execute(_UPSERT_SQL, params)
        logger.debug("[Store] upserted %s", link)

    async def get(self, link: str) -> Optional[Record]:
        async with self._db.connect() as conn:
            cursor = await conn.execute("SELECT * FROM articles WHERE link = ?", (link,))
            row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def query(self, filters: Optional[RecordQuery] = None) -> List[Record]:
        """Filtered records, newest publication first, capped at ``query_limit``."""
        filters = filters or RecordQuery()
        clauses: List[str] = []
        params: List[Any] = []

        if filters.source:
            clauses.append("source = ?")
            params.append(filters.source)
        if filters.category:
            clauses.append("category = ?")
            params.append(filters.category)
        if filters.start:
            clauses.append("pub_date >= ?")
            params.append(to_iso(filters.start))
        if filters.end:
            clauses.append("pub_date <= ?")
            params.append(to_iso(filters.end))
        if filters.keyword:
            pattern = f"%{_escape_like(filters.keyword.lower())}%"
            clauses.append("(LOWER(title) LIKE ? ESCAPE '\\' OR LOWER(summary) LIKE ? ESCAPE '\\')")
            params.extend([pattern, pattern])

        limit = min(self.query_limit, int(filters.limit)) if filters.limit else self.query_limit
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT * FROM articles {where} ORDER BY pub_date DESC LIMIT ?"
        params.append(max(1, limit))

        async with self._db.connect() as conn:
            cursor = await conn.execute(sql, params)
            rows = await cursor.fetchall()

        records = [_row_to_record(row) for row in rows]
        logger.debug("[Store] query returned %d records", len(records))
        return records

    async def sweep(self, retention: timedelta) -> int:
        """Delete records published before now - retention; returns the count removed."""
        cutoff = self._clock() - retention
        async with self._db.connect() as conn:
            cursor = await conn.execute("DELETE FROM articles WHERE pub_date < ?", (to_iso(cutoff),))
            removed = cursor.rowcount or 0
        logger.info("[Store] swept %d records older than %s", removed, to_iso(cutoff))
        return removed

    async def count(self) -> int:
        async with self._db.connect() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM articles")
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def list_sources(self) -> List[str]:
        return await self._distinct("source")

    async def list_categories(self) -> List[str]:
        return await self._distinct("category")

    async def _distinct(self, column: str) -> List[str]:
        async with self._db.connect() as conn:
            cursor = await conn.execute(
                f"SELECT DISTINCT {column} FROM articles WHERE {column} IS NOT NULL AND {column} != '' ORDER BY {column}"
            )
            rows = await cursor.fetchall()
        return [row[0] for row in rows]
