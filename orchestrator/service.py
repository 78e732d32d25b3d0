"""Digest run orchestration: fetch, query, summarize, deliver, archive."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
import hmac
import logging
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from config import Settings, get_settings
from core import Artifact, DeliveryStatus, Record, RecordQuery
from delivery import Deliverer
from intelligence.summarizer import Summarizer, fallback_artifact
from scrapers import BaseSourceAdapter
from sources import FetchReport, fetch_sources
from storage import ArtifactLog, ArtifactStore, ContentStore
from utils.clock import civil_date, resolve_tz, utcnow
from utils.concurrency import ConcurrencyLimiter
from utils.retry import RetryPolicy
from .heartbeat import Heartbeat, NoopHeartbeat
from .state import RunStateTracker


logger = logging.getLogger(__name__)


@dataclass
class TriggerResult:
    """Outcome of an inbound trigger; accepted runs continue in ``task``."""

    accepted: bool
    reason: str = ""
    task: Optional[asyncio.Task] = None


class DigestOrchestrator:
    """
    Owns one digest run end to end.

    Every collaborator failure is absorbed here: a summarizer error becomes a
    fallback artifact, a delivery error a failed status, an archive error a log
    line. Only unexpected failures land in ``RunState.last_error``.
    """

    def __init__(
        self,
        *,
        adapters: Sequence[BaseSourceAdapter],
        content_store: ContentStore,
        artifact_store: ArtifactStore,
        artifact_log: ArtifactLog,
        summarizer: Summarizer,
        deliverer: Deliverer,
        settings: Optional[Settings] = None,
        heartbeat: Optional[Heartbeat] = None,
        state: Optional[RunStateTracker] = None,
        clock=utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self.adapters = list(adapters)
        self.content_store = content_store
        self.artifact_store = artifact_store
        self.artifact_log = artifact_log
        self.summarizer = summarizer
        self.deliverer = deliverer
        self.heartbeat = heartbeat or NoopHeartbeat()
        self.state = state or RunStateTracker()
        self._clock = clock
        self._tz = resolve_tz(self.settings.general.timezone)
        self._tasks: Set[asyncio.Task] = set()
        # one gate per process: overlapping runs and refreshes share its width
        self.limiter = ConcurrencyLimiter(self.settings.fetch.concurrency)
        self.fetch_policy = RetryPolicy(
            max_attempts=self.settings.fetch.max_attempts,
            base_delay=self.settings.fetch.retry_base_delay,
        )

    # ------------------------------------------------------------------
    # surfaces
    # ------------------------------------------------------------------
    def trigger(self, token: Optional[str]) -> TriggerResult:
        """Start a run in the background if ``token`` matches the shared secret exactly."""
        secret = self.settings.digest.cron_secret
        if not secret or token is None or not hmac.compare_digest(str(token).encode(), secret.encode()):
            logger.warning("[Digest] rejected trigger: invalid token")
            return TriggerResult(accepted=False, reason="unauthorized")

        task = asyncio.get_running_loop().create_task(self.run_digest())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("[Digest] trigger accepted, run started in background")
        return TriggerResult(accepted=True, reason="started", task=task)

    def status(self) -> Dict[str, Any]:
        return {"status": "ok", **self.state.as_dict()}

    async def wait_for_background(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # phases
    # ------------------------------------------------------------------
    async def fetch_now(self) -> FetchReport:
        return await fetch_sources(
            self.adapters,
            limiter=self.limiter,
            policy=self.fetch_policy,
            store=self.content_store,
        )

    async def sweep(self) -> int:
        return await self.content_store.sweep(timedelta(days=self.settings.storage.retention_days))

    async def _summarize(self, records: Sequence[Record], category: str) -> Artifact:
        try:
            return await self.summarizer.summarize(records, category)
        except Exception as exc:
            logger.error("[Digest] summarizer failed, using fallback artifact: %s", exc)
            return fallback_artifact(records, category)

    async def _deliver(self, artifact: Artifact, weekly: List[str]) -> DeliveryStatus:
        try:
            return await self.deliverer.deliver(artifact, weekly or None)
        except Exception as exc:
            logger.error("[Digest] delivery raised: %s", exc)
            return DeliveryStatus.failed(str(exc))

    def _is_rollup_day(self, now: datetime) -> bool:
        return civil_date(now, self._tz).weekday() == self.settings.digest.rollup_weekday

    async def _rollup(self, now: datetime) -> List[str]:
        if not self._is_rollup_day(now):
            return []
        try:
            recent = await self.artifact_log.read_recent(self.settings.digest.rollup_count)
            return list(await self.summarizer.rollup(recent))
        except Exception as exc:
            logger.error("[Digest] weekly rollup failed: %s", exc)
            return []

    async def _archive(self, artifact: Artifact, delivery: DeliveryStatus) -> Artifact:
        archive_error: Optional[Exception] = None
        try:
            row_id = await self.artifact_store.save(artifact, artifact.category)
            if row_id is not None:
                artifact = artifact.model_copy(update={"id": row_id})
        except Exception as exc:
            archive_error = exc
            logger.error("[Digest] archive failed, artifact kept in the log only: %s", exc)

        try:
            await self.artifact_log.append(artifact, delivery=delivery.status)
        except Exception as exc:
            logger.error("[Digest] artifact log append failed: %s", exc)
            if archive_error is not None:
                raise
        return artifact

    async def _run_pipeline(self) -> Tuple[Artifact, DeliveryStatus, int]:
        category = self.settings.digest.category
        report = await self.fetch_now()
        logger.info("[Digest] fetched %d records (%d sources failed)", report.total, len(report.failed_sources))

        now = self._clock()
        window = RecordQuery(start=now - timedelta(hours=self.settings.digest.window_hours), end=now)
        records = await self.content_store.query(window)

        weekly: List[str] = []
        if not records:
            logger.info("[Digest] no records in the last %dh, sending nothing-notable notice", self.settings.digest.window_hours)
            artifact = fallback_artifact([], category, fallback=False)
        else:
            artifact = None
            if self.settings.cache.same_day_window:
                fresh = await self.artifact_store.get_fresh(category, same_day=True)
                if fresh is not None and not fresh.is_empty:
                    logger.info("[Digest] reusing %s artifact generated today", category)
                    artifact = fresh
            if artifact is None:
                artifact = await self._summarize(records, category)
            weekly = await self._rollup(now)
            if weekly:
                artifact = artifact.model_copy(update={"weekly_summary": weekly})

        delivery = await self._deliver(artifact, weekly)
        artifact = await self._archive(artifact, delivery)
        return artifact, delivery, len(records)

    async def run_digest(self) -> Optional[Artifact]:
        """One full run; never raises. Returns the archived artifact, or None on failure."""
        self.state.begin()
        artifact: Optional[Artifact] = None
        delivery: Optional[DeliveryStatus] = None
        article_count: Optional[int] = None
        error: Optional[str] = None
        try:
            async with self.heartbeat.running():
                artifact, delivery, article_count = await self._run_pipeline()
            logger.info(
                "[Digest] run complete: %d records, delivery %s",
                article_count,
                delivery.status,
            )
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.exception("[Digest] run failed: %s", exc)
        finally:
            self.state.finish(
                finished_at=self._clock(),
                article_count=article_count,
                delivery=delivery,
                error=error,
            )
        return artifact

    # ------------------------------------------------------------------
    # read API helpers
    # ------------------------------------------------------------------
    async def get_or_generate_insights(self, category: str, *, refresh: bool = False) -> Artifact:
        """Fresh artifact for ``category`` from cache/archive, else generate and save one."""
        if not refresh:
            fresh = await self.artifact_store.get_fresh(category)
            if fresh is not None:
                return fresh

        aggregate = category == self.settings.cache.aggregate_category
        records = await self.content_store.query(RecordQuery(category=None if aggregate else category))
        if records:
            artifact = await self._summarize(records, category)
        else:
            artifact = fallback_artifact([], category, fallback=False)

        try:
            row_id = await self.artifact_store.save(artifact, category)
            if row_id is not None:
                artifact = artifact.model_copy(update={"id": row_id})
        except Exception as exc:
            logger.error("[Digest] failed to archive %s insights: %s", category, exc)
        return artifact
