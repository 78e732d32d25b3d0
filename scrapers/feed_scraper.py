"""
Feed Scraper
RSS / Atom 数据源适配器 (基于 feedparser)
"""
import calendar
from datetime import datetime, timezone
import logging
import re
from typing import Any, List, Optional

import feedparser

from .base import BaseSourceAdapter
from core import Record, RecordKind
from utils.exceptions import SourceFetchError
from utils.text import decode_entities, excerpt, strip_html, truncate


logger = logging.getLogger(__name__)

_YOUTUBE_ID_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/shorts/)([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/v/([a-zA-Z0-9_-]{11})"),
]
_YTIMG_RE = re.compile(r"https?://i[1-4]\.ytimg\.com/vi/([a-zA-Z0-9_-]+)/([^/]+\.jpg)")


def extract_youtube_video_id(url: Optional[str]) -> Optional[str]:
    """从链接中提取 11 位 YouTube 视频 ID"""
    if not url:
        return None
    for pattern in _YOUTUBE_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def normalize_youtube_thumbnail(url: Optional[str]) -> Optional[str]:
    """i1-i4.ytimg.com 缩略图统一改写到 img.youtube.com"""
    if not url:
        return url
    match = _YTIMG_RE.match(url)
    if match:
        return f"https://img.youtube.com/vi/{match.group(1)}/{match.group(2)}"
    return url


def _first_url(values: Any, key: str = "url") -> Optional[str]:
    if isinstance(values, dict):
        values = [values]
    for value in list(values or []):
        if isinstance(value, dict):
            url = str(value.get(key) or "").strip()
            if url:
                return url
    return None


def extract_image_url(entry: Any) -> Optional[str]:
    """
    按优先级提取配图:
    media:thumbnail (含 media:group) -> media:content -> enclosure -> itunes:image
    -> 根据链接中的视频 ID 构造 YouTube 缩略图
    """
    image_url = _first_url(entry.get("media_thumbnail"))

    if not image_url:
        image_url = _first_url(entry.get("media_content"))

    if not image_url:
        image_url = _first_url(entry.get("enclosures"), key="href")
    if not image_url:
        enclosure_links = [link for link in entry.get("links", []) if link.get("rel") == "enclosure"]
        image_url = _first_url(enclosure_links, key="href")

    if not image_url:
        itunes_image = entry.get("image")
        if isinstance(itunes_image, str):
            image_url = itunes_image.strip() or None
        else:
            image_url = _first_url(itunes_image, key="href")

    if not image_url:
        video_id = extract_youtube_video_id(entry.get("link"))
        if video_id:
            image_url = f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg"

    return normalize_youtube_thumbnail(image_url)


def _entry_datetime(entry: Any) -> Optional[datetime]:
    for key in ("published_parsed", "updated_parsed", "created_parsed"):
        parsed = entry.get(key)
        if parsed:
            return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
    return None


def _entry_body(entry: Any) -> str:
    for block in list(entry.get("content") or []):
        value = block.get("value") if isinstance(block, dict) else None
        if value:
            return str(value)
    return str(entry.get("description") or entry.get("summary") or "")


class FeedScraper(BaseSourceAdapter):
    """
    RSS/Atom 适配器

    特性:
    - 只取最近 max_items 条
    - 去除富文本标签并解码 HTML 实体
    - 多级回退提取配图
    """

    def __init__(
        self,
        name: str,
        url: str,
        category: str = "",
        kind: RecordKind = RecordKind.STANDARD,
        max_items: Optional[int] = None,
        settings=None,
    ):
        super().__init__(settings)
        self._name = name
        self.url = url
        self._category = category
        self.kind = kind
        self.max_items = max_items or self.settings.fetch.max_items_per_feed

    @property
    def name(self) -> str:
        return self._name

    @property
    def category(self) -> str:
        return self._category

    def is_configured(self) -> bool:
        return bool(str(self.url or "").strip())

    async def fetch(self) -> List[Record]:
        document = await self._get_text(self.url)
        feed = await self._run_blocking(feedparser.parse, document)

        entries = list(feed.get("entries") or [])
        if not entries and feed.get("bozo"):
            raise SourceFetchError(
                f"malformed feed: {feed.get('bozo_exception')}",
                source=self.name,
                url=self.url,
            )

        records: List[Record] = []
        for entry in entries[: max(1, int(self.max_items))]:
            try:
                record = self._convert_entry(entry)
            except Exception as e:
                self._log_error("Entry parse failed", e)
                continue
            if record:
                records.append(record)

        self._log_fetch(len(records))
        return records

    def _convert_entry(self, entry: Any) -> Optional[Record]:
        """转换 feedparser 条目为 Record"""
        link = str(entry.get("link") or "").strip()
        if not link:
            self._log_skip("missing link", str(entry.get("title") or ""))
            return None

        clean_content = strip_html(_entry_body(entry))

        return Record(
            link=link,
            title=decode_entities(entry.get("title") or ""),
            source=self.name,
            category=self.category,
            kind=self.kind,
            summary=excerpt(clean_content, 300),
            content=truncate(clean_content, 500),
            image_url=extract_image_url(entry),
            published_at=_entry_datetime(entry) or datetime.now(timezone.utc),
        )
