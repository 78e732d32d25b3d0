"""SQLite connection helper shared by the content store and the artifact archive."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from pathlib import Path
from typing import AsyncIterator

import aiosqlite


logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    link TEXT UNIQUE NOT NULL,
    title TEXT NOT NULL,
    source TEXT,
    category TEXT,
    kind TEXT NOT NULL DEFAULT 'standard',
    summary TEXT,
    original_content TEXT,
    image_url TEXT,
    pub_date TEXT NOT NULL,
    first_seen_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_articles_source ON articles(source);
CREATE INDEX IF NOT EXISTS idx_articles_category ON articles(category);
CREATE INDEX IF NOT EXISTS idx_articles_pub_date ON articles(pub_date);

CREATE TABLE IF NOT EXISTS insights_archive (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    category TEXT NOT NULL,
    tldr TEXT NOT NULL DEFAULT '[]',
    signals TEXT NOT NULL DEFAULT '[]',
    themes TEXT NOT NULL DEFAULT '[]',
    worth_reading TEXT NOT NULL DEFAULT '[]',
    article_count INTEGER NOT NULL DEFAULT 0,
    source_count INTEGER NOT NULL DEFAULT 0,
    date_range_start TEXT,
    date_range_end TEXT,
    generated_at TEXT NOT NULL,
    window_start TEXT
);
CREATE INDEX IF NOT EXISTS idx_archive_category_generated ON insights_archive(category, generated_at);
"""

# Columns added after the first release; (table, column, type)
_ADDITIVE_COLUMNS = (
    ("insights_archive", "window_start", "TEXT"),
)


class Database:
    """Opens a short-lived autocommit connection per operation (WAL mode)."""

    def __init__(self, path: str | Path, *, busy_timeout: float = 30.0) -> None:
        self.path = Path(path)
        self.busy_timeout = float(busy_timeout)
        self._initialized = False

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        if not self._initialized:
            await self.init()
        async with self._open() as conn:
            yield conn

    @asynccontextmanager
    async def _open(self) -> AsyncIterator[aiosqlite.Connection]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self.path), timeout=self.busy_timeout, isolation_level=None) as conn:
            conn.row_factory = aiosqlite.Row
            yield conn

    async def init(self) -> None:
        async with self._open() as conn:
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.executescript(_SCHEMA)
            for table, column, kind in _ADDITIVE_COLUMNS:
                cursor = await conn.execute(f"PRAGMA table_info({table})")
                existing = {row["name"] for row in await cursor.fetchall()}
                if column not in existing:
                    await conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {kind}")
                    logger.info("[DB] added column %s.%s", table, column)
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_archive_category_window ON insights_archive(category, window_start)"
            )
        self._initialized = True
        logger.info("[DB] database ready at %s", self.path)
