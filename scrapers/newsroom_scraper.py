"""
Newsroom Scrapers
无 RSS 的竞品新闻页抓取 (httpx + BeautifulSoup)

新增一个目标站点 = 新增一个 NewsroomScraper 子类并用 @register_scraper 注册，
不需要改动管道本身。
"""
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
import logging
from typing import Callable, Dict, List, Optional, Type
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .base import BaseSourceAdapter
from core import Record


logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 10
MAX_TITLE_LENGTH = 200

_DATE_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%b. %d, %Y", "%m/%d/%Y", "%Y-%m-%d", "%d %B %Y")

SCRAPER_REGISTRY: Dict[str, Type["NewsroomScraper"]] = {}


def register_scraper(key: str) -> Callable[[Type["NewsroomScraper"]], Type["NewsroomScraper"]]:
    """注册新闻页抓取器"""
    def decorator(cls: Type["NewsroomScraper"]) -> Type["NewsroomScraper"]:
        cls.key = key
        SCRAPER_REGISTRY[key] = cls
        return cls
    return decorator


def parse_date_text(text: Optional[str]) -> Optional[datetime]:
    """尽力解析页面上的日期文本，失败返回 None"""
    value = " ".join(str(text or "").split())
    if not value:
        return None

    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    try:
        dt = parsedate_to_datetime(value)
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    except (TypeError, ValueError, IndexError):
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


class EntryCollector:
    """
    收集页面条目，防御性跳过:
    - 缺少标题或链接
    - 标题过短
    - 重复标题 / 重复链接
    """

    def __init__(self, max_items: int, base_url: str = ""):
        self.max_items = max(1, int(max_items))
        self.base_url = base_url
        self.entries: List[Dict[str, Optional[str]]] = []
        self._titles = set()
        self._links = set()

    @property
    def full(self) -> bool:
        return len(self.entries) >= self.max_items

    def add(self, title: Optional[str], href: Optional[str], date_text: Optional[str] = None) -> bool:
        title = " ".join(str(title or "").split())
        href = str(href or "").strip()
        if self.full or not title or not href:
            return False
        if len(title) < MIN_TITLE_LENGTH:
            return False
        if len(title) > MAX_TITLE_LENGTH:
            title = title[:MAX_TITLE_LENGTH]

        link = href if href.startswith("http") else urljoin(self.base_url, href)
        if title in self._titles or link in self._links:
            return False

        self._titles.add(title)
        self._links.add(link)
        self.entries.append({"title": title, "link": link, "date_text": date_text})
        return True


class NewsroomScraper(BaseSourceAdapter):
    """
    新闻页抓取器基类
    子类声明页面地址并实现 parse()，按该站点已知布局提取条目。
    """

    key: str = ""
    display_name: str = ""
    page_url: str = ""
    base_url: str = ""

    def __init__(self, max_items: Optional[int] = None, settings=None):
        super().__init__(settings)
        self.max_items = max_items or self.settings.fetch.max_items_per_page

    @property
    def name(self) -> str:
        return self.display_name or self.key

    @property
    def category(self) -> str:
        return "competitor-intel"

    def parse(self, soup: BeautifulSoup, collector: EntryCollector) -> None:
        """按页面布局把条目写入 collector"""
        raise NotImplementedError

    def parse_html(self, html: str) -> List[Record]:
        """解析页面 HTML 为记录列表 (不做网络请求)"""
        soup = BeautifulSoup(html, "lxml")
        collector = EntryCollector(self.max_items, base_url=self.base_url)
        self.parse(soup, collector)

        now = datetime.now(timezone.utc)
        records: List[Record] = []
        for entry in collector.entries:
            try:
                records.append(
                    Record(
                        link=entry["link"],
                        title=entry["title"],
                        source=self.name,
                        category=self.category,
                        published_at=parse_date_text(entry.get("date_text")) or now,
                    )
                )
            except ValueError as e:
                self._log_error(f"Invalid entry {entry.get('link')}", e)
        return records

    async def fetch(self) -> List[Record]:
        html = await self._get_text(self.page_url)
        records = self.parse_html(html)
        self._log_fetch(len(records))
        return records


def _text(node: Optional[Tag]) -> str:
    return node.get_text(" ", strip=True) if node is not None else ""


@register_scraper("rocket")
class RocketPressReleasesScraper(NewsroomScraper):
    """Rocket Companies 新闻稿 (含收购后的 Mr. Cooper)"""

    display_name = "Rocket Companies Newsroom"
    page_url = "https://rocketcompanies.com/press-releases/"
    base_url = "https://rocketcompanies.com"

    def parse(self, soup: BeautifulSoup, collector: EntryCollector) -> None:
        for anchor in soup.select('a[href*="/press-release/"]'):
            if collector.full:
                break
            try:
                container = anchor.find_parent(["li", "div", "article"])
                date_node = None
                if container is not None:
                    date_node = container.select_one("time, [datetime], .date, .press-release-date")
                date_text = None
                if date_node is not None:
                    date_text = date_node.get("datetime") or _text(date_node)
                collector.add(_text(anchor), anchor.get("href"), date_text)
            except Exception as e:
                self._log_error("Entry parse failed", e)


_BLEND_EXTERNAL_HOSTS = ("businesswire.com", "prnewswire.com", "globenewswire.com")


@register_scraper("blend")
class BlendNewsroomScraper(NewsroomScraper):
    """Blend 新闻室 (卡片布局，链接多指向 Business Wire 等外部稿件)"""

    display_name = "Blend Newsroom"
    page_url = "https://blend.com/company/newsroom/"
    base_url = "https://blend.com"

    @staticmethod
    def _is_news_link(href: str) -> bool:
        if any(host in href for host in _BLEND_EXTERNAL_HOSTS):
            return True
        return "blend.com" in href and "/blog/" in href

    def parse(self, soup: BeautifulSoup, collector: EntryCollector) -> None:
        for anchor in soup.select("a[href]"):
            if collector.full:
                break
            href = str(anchor.get("href") or "")
            if not self._is_news_link(href):
                continue
            try:
                card = anchor.find_parent(["div", "article", "li"])
                title = _text(anchor.find(["h2", "h3", "h4"]))
                if not title and card is not None:
                    title = _text(card.find(["h2", "h3", "h4"]))
                if not title:
                    title = _text(anchor)
                # 卡片上不显示日期
                collector.add(title, href)
            except Exception as e:
                self._log_error("Entry parse failed", e)


@register_scraper("ice")
class ICEMortgageTechScraper(NewsroomScraper):
    """ICE 媒体页 (表格布局: 日期 | 标题 | 类别)，只保留 Mortgage Technology 条目"""

    display_name = "ICE Mortgage Technology"
    page_url = "https://www.ice.com/media"
    base_url = "https://www.ice.com"

    def parse(self, soup: BeautifulSoup, collector: EntryCollector) -> None:
        for row in soup.select('table tr, .press-release-row, [class*="press"]'):
            if collector.full:
                break
            cells = row.find_all("td")
            if len(cells) < 2:
                continue
            if "mortgage" not in _text(row).lower():
                continue
            try:
                anchor = row.find("a")
                title = _text(anchor) or _text(cells[1])
                href = anchor.get("href") if anchor is not None else None
                collector.add(title, href, _text(cells[0]))
            except Exception as e:
                self._log_error("Entry parse failed", e)
