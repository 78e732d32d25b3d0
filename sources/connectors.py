"""Fetch phase: every source adapter, retried and gated, into the content store."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Sequence

from core import Record
from scrapers import BaseSourceAdapter
from storage.content_store import ContentStore
from utils.concurrency import ConcurrencyLimiter
from utils.retry import RetryPolicy, run_with_retry


logger = logging.getLogger(__name__)


@dataclass
class FetchReport:
    """Union of every successful source's records plus per-source accounting."""

    records: List[Record] = field(default_factory=list)
    per_source: Dict[str, int] = field(default_factory=dict)
    failed_sources: Dict[str, str] = field(default_factory=dict)
    stored: int = 0

    @property
    def total(self) -> int:
        return len(self.records)


def _fetch_operation(adapter: BaseSourceAdapter, policy: RetryPolicy):
    async def _op() -> List[Record]:
        return await run_with_retry(adapter.fetch, policy=policy, label=adapter.name)

    return _op


async def fetch_sources(
    adapters: Sequence[BaseSourceAdapter],
    *,
    limiter: Optional[ConcurrencyLimiter] = None,
    policy: Optional[RetryPolicy] = None,
    store: Optional[ContentStore] = None,
) -> FetchReport:
    """
    Run every adapter through the limiter, each wrapped by the retry executor.

    A source that exhausts its retries contributes nothing; its siblings and
    the caller are unaffected. Successful records are upserted one by one so a
    bad record never blocks the rest of its batch.
    """
    limiter = limiter or ConcurrencyLimiter()
    policy = policy or RetryPolicy()
    report = FetchReport()

    logger.info("[Fetch] fetching %d sources (width=%d)", len(adapters), limiter.width)
    outcomes = await limiter.settle_all([_fetch_operation(adapter, policy) for adapter in adapters])

    for adapter, outcome in zip(adapters, outcomes):
        if not outcome.ok:
            report.failed_sources[adapter.name] = str(outcome.error)
            report.per_source[adapter.name] = 0
            logger.warning("[Fetch] %s failed after %d attempts: %s", adapter.name, policy.max_attempts, outcome.error)
            continue
        records = list(outcome.value or [])
        report.per_source[adapter.name] = len(records)
        report.records.extend(records)

    if store is not None:
        for record in report.records:
            try:
                await store.upsert(record)
                report.stored += 1
            except Exception as exc:
                logger.error("[Fetch] failed to store %s: %s", record.link, exc)

    logger.info(
        "[Fetch] %d records from %d/%d sources",
        report.total,
        len(adapters) - len(report.failed_sources),
        len(adapters),
    )
    return report
