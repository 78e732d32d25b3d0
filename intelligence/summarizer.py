"""
Summarizer
把最近窗口内的文章交给 Claude 生成结构化摘要；任何失败都降级为 fallback 产物
"""
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, Set
import asyncio
import json
import logging
import re

from core import Artifact, Insight, Record, RecordKind, Signal, WorthReading
from utils.clock import utcnow
from utils.exceptions import SummarizationError


logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


class Summarizer(Protocol):
    """摘要协作者接口"""

    async def summarize(self, records: Sequence[Record], category: str) -> Artifact:
        ...

    async def rollup(self, artifacts: Sequence[Artifact]) -> List[str]:
        ...


def _source_count(records: Sequence[Record]) -> int:
    return len({record.source for record in records if record.source})


def _date_range(records: Sequence[Record]) -> Dict[str, Optional[datetime]]:
    if not records:
        return {"date_range_start": None, "date_range_end": None}
    published = [record.published_at for record in records]
    return {"date_range_start": min(published), "date_range_end": max(published)}


def fallback_artifact(records: Sequence[Record], category: str, *, fallback: bool = True) -> Artifact:
    """
    同结构的降级产物: 列表为空, nothing_notable=True

    Args:
        records: 本次窗口内的文章
        category: 产物类别
        fallback: 是否标记为降级 (空窗口时为 False)
    """
    return Artifact(
        category=category,
        nothing_notable=True,
        fallback=fallback,
        article_count=len(records),
        source_count=_source_count(records),
        generated_at=utcnow(),
        **_date_range(records),
    )


def extract_json(text: str, *, array: bool = False) -> Any:
    """解析模型输出中的 JSON (容忍 ``` 代码块和前后多余文字)"""
    text = (text or "").strip()
    fenced = _FENCED_JSON.search(text)
    if fenced:
        text = fenced.group(1)
    else:
        match = (_JSON_ARRAY if array else _JSON_OBJECT).search(text)
        if match:
            text = match.group(0)
    return json.loads(text)


def _fingerprint(text: str) -> str:
    return _NON_ALNUM.sub(" ", (text or "").lower()).strip()


def _overlaps(a: str, b: str) -> bool:
    words_a = {word for word in a.split() if len(word) > 3}
    words_b = {word for word in b.split() if len(word) > 3}
    if not words_a or not words_b:
        return False
    shared = len(words_a & words_b)
    return shared >= 2 and shared / min(len(words_a), len(words_b)) >= 0.4


class _SectionDeduper:
    """跨栏目去重: insights > signals > worth_reading, 按 URL 和关键词重叠判断"""

    def __init__(self) -> None:
        self.urls: Set[str] = set()
        self.fingerprints: List[str] = []

    def is_duplicate(self, url: str, text: str) -> bool:
        if url and url in self.urls:
            return True
        fp = _fingerprint(text)
        return bool(fp) and any(_overlaps(fp, used) for used in self.fingerprints)

    def mark(self, url: str, text: str) -> None:
        if url:
            self.urls.add(url)
        fp = _fingerprint(text)
        if fp:
            self.fingerprints.append(fp)


def dedupe_sections(artifact: Artifact) -> Artifact:
    deduper = _SectionDeduper()
    for insight in artifact.top_insights:
        deduper.mark(insight.url, insight.headline or insight.explanation)

    signals = []
    for signal in artifact.signals:
        text = signal.signal or signal.competitor
        if deduper.is_duplicate(signal.url, text):
            continue
        deduper.mark(signal.url, text)
        signals.append(signal)

    worth_reading = [item for item in artifact.worth_reading if not deduper.is_duplicate(item.url, item.title)]

    removed = (len(artifact.signals) - len(signals)) + (len(artifact.worth_reading) - len(worth_reading))
    if removed:
        logger.info("[Summarizer] dedup removed %d duplicate(s) from lower-priority sections", removed)
    return artifact.model_copy(update={"signals": signals, "worth_reading": worth_reading})


def build_digest_prompt(records: Sequence[Record], category: str, audience: str) -> str:
    """按类别分组构造提示词；视频条目只列标题"""
    content = [record for record in records if record.kind != RecordKind.MEDIA]
    media = [record for record in records if record.kind == RecordKind.MEDIA]

    grouped: "OrderedDict[str, List[Record]]" = OrderedDict()
    for record in content:
        grouped.setdefault(record.category or "uncategorized", []).append(record)

    lines: List[str] = []
    for group, items in grouped.items():
        lines.append(f"\n## {group.upper()} ({len(items)} articles)")
        for record in items:
            summary = record.summary or record.content[:200]
            lines.append(f"- **{record.title}** ({record.source})\n  {summary}\n  URL: {record.link}")
    if media:
        lines.append(f"\n## VIDEOS ({len(media)} items, titles only, do NOT generate insights from video titles)")
        for record in media:
            lines.append(f"- {record.title} ({record.source}) {record.link}")

    return f"""You are the daily intelligence analyst for {audience}.

TODAY'S {category.upper()} ARTICLES ({len(content)} content articles + {len(media)} videos from {_source_count(records)} sources):
{chr(10).join(lines)}

Only include an item in top_insights or competitive_signals if it directly affects the business,
signals a technology shift, or is a competitor move that needs a response.
worth_reading may also include strong product management content.

OUTPUT FORMAT (strict JSON, no markdown fences):
{{
  "tldr": ["One-line takeaway"],
  "top_insights": [
    {{"headline": "...", "explanation": "2-3 sentences", "connection": "...", "source": "...", "url": "..."}}
  ],
  "competitive_signals": [
    {{"competitor": "...", "signal": "...", "implication": "...", "url": "..."}}
  ],
  "worth_reading": [
    {{"title": "...", "reason": "...", "url": "..."}}
  ],
  "nothing_notable": false
}}

RULES:
- top_insights: at most 3. competitive_signals: 0-3. worth_reading: 3-5 links.
- If nothing is notable, set nothing_notable to true and leave the arrays empty.
- Never fabricate URLs; only use URLs from the articles above.

Return ONLY the JSON object."""


def build_rollup_prompt(artifacts: Sequence[Artifact]) -> str:
    blocks = []
    for artifact in artifacts:
        insights = "\n".join(f"- {item.headline}: {item.explanation}" for item in artifact.top_insights)
        signals = "\n".join(f"- {item.competitor}: {item.signal}" for item in artifact.signals)
        blocks.append(f"### {artifact.generated_at.date().isoformat()}\nInsights:\n{insights}\nSignals:\n{signals}")

    return f"""You are a weekly intelligence summarizer.

Here are this week's daily digests:

{chr(10).join(blocks)}

Write 3-5 bullet points covering recurring themes, the single most important competitive
development, and what should be discussed at the next product team meeting.

Return ONLY a JSON array of strings."""


class AnthropicSummarizer:
    """
    Claude 摘要实现

    没有 API Key、超时、接口报错或输出无法解析时返回 fallback 产物，从不抛出
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-5-20250929",
        temperature: float = 0.25,
        max_tokens: int = 8000,
        timeout: float = 180.0,
        rollup_timeout: float = 60.0,
        audience: str = "a product manager",
        client: Any = None,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.rollup_timeout = rollup_timeout
        self.audience = audience
        self._async_client = client

    @property
    def provider(self) -> str:
        return "anthropic"

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) or self._async_client is not None

    def _get_async_client(self):
        """获取异步客户端"""
        if self._async_client is None:
            from anthropic import AsyncAnthropic
            self._async_client = AsyncAnthropic(api_key=self.api_key, timeout=self.timeout)
        return self._async_client

    async def _complete(self, prompt: str, *, max_tokens: int, timeout: float) -> str:
        client = self._get_async_client()
        response = await asyncio.wait_for(
            client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            ),
            timeout=timeout,
        )
        return "".join(
            getattr(block, "text", "") for block in response.content if getattr(block, "type", "text") == "text"
        ).strip()

    async def summarize(self, records: Sequence[Record], category: str) -> Artifact:
        if not records:
            return fallback_artifact(records, category, fallback=False)
        if not self.is_configured:
            logger.warning("[Summarizer] no API key configured, returning fallback artifact")
            return fallback_artifact(records, category)

        prompt = build_digest_prompt(records, category, self.audience)
        try:
            text = await self._complete(prompt, max_tokens=self.max_tokens, timeout=self.timeout)
            payload = extract_json(text)
            if not isinstance(payload, dict):
                raise SummarizationError("summary payload is not a JSON object", provider="anthropic")
            artifact = self._to_artifact(payload, records, category)
        except Exception as exc:
            logger.error(
                "[Summarizer] generation failed (%s: %s); %d records, prompt %d chars",
                type(exc).__name__,
                exc,
                len(records),
                len(prompt),
            )
            return fallback_artifact(records, category)

        artifact = dedupe_sections(artifact)
        logger.info(
            "[Summarizer] generated %d insights, %d signals, %d links",
            len(artifact.top_insights),
            len(artifact.signals),
            len(artifact.worth_reading),
        )
        return artifact

    def _to_artifact(self, payload: Dict[str, Any], records: Sequence[Record], category: str) -> Artifact:
        insights = [Insight.model_validate(item) for item in payload.get("top_insights") or [] if isinstance(item, dict)]
        signals = [
            Signal.model_validate(item)
            for item in payload.get("competitive_signals") or payload.get("signals") or []
            if isinstance(item, dict)
        ]
        links = [WorthReading.model_validate(item) for item in payload.get("worth_reading") or [] if isinstance(item, dict)]
        tldr = [str(item).strip() for item in payload.get("tldr") or [] if str(item).strip()]
        if not tldr:
            tldr = [insight.headline for insight in insights if insight.headline]

        return Artifact(
            category=category,
            tldr=tldr,
            top_insights=insights,
            signals=signals,
            worth_reading=links,
            nothing_notable=bool(payload.get("nothing_notable")) and not (insights or signals),
            article_count=len(records),
            source_count=_source_count(records),
            generated_at=utcnow(),
            **_date_range(records),
        )

    async def rollup(self, artifacts: Sequence[Artifact]) -> List[str]:
        """把最近几份摘要汇总为 3-5 条要点；失败时返回空列表"""
        if not artifacts:
            return []
        if not self.is_configured:
            logger.info("[Summarizer] no API key, skipping weekly rollup")
            return []

        try:
            text = await self._complete(build_rollup_prompt(artifacts), max_tokens=2000, timeout=self.rollup_timeout)
            bullets = extract_json(text, array=True)
        except Exception as exc:
            logger.error("[Summarizer] weekly rollup failed: %s", exc)
            return []

        if not isinstance(bullets, list):
            return []
        bullets = [str(item).strip() for item in bullets if str(item).strip()]
        logger.info("[Summarizer] weekly rollup: %d bullets", len(bullets))
        return bullets
