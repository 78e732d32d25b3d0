"""Shared runtime singletons for web/CLI entrypoints."""

from __future__ import annotations

from typing import Optional

from config import Settings, get_settings
from delivery import EmailDeliverer
from intelligence import AnthropicSummarizer
from orchestrator import DigestOrchestrator, DigestScheduler, build_heartbeat
from sources import build_adapters, load_catalog
from storage import ArtifactLog, ArtifactStore, ContentStore, Database, MemoryCache
from utils.retry import RetryPolicy


_ORCHESTRATOR: Optional[DigestOrchestrator] = None
_SCHEDULER: Optional[DigestScheduler] = None


def build_orchestrator(settings: Optional[Settings] = None) -> DigestOrchestrator:
    """Wire every collaborator from settings. The artifact cache is created here, once."""
    settings = settings or get_settings()
    database = Database(settings.storage.db_path)
    cache = MemoryCache(ttl=settings.cache.ttl_seconds, max_size=settings.cache.max_entries)

    return DigestOrchestrator(
        adapters=build_adapters(load_catalog(settings.fetch.sources_file), settings),
        content_store=ContentStore(database, query_limit=settings.storage.query_limit),
        artifact_store=ArtifactStore(
            database,
            cache=cache,
            timezone=settings.general.timezone,
            fresh_days=settings.cache.fresh_days,
            collision_days=settings.cache.collision_days,
            category_collision_days={settings.digest.category: settings.cache.digest_collision_days},
            aggregate_category=settings.cache.aggregate_category,
        ),
        artifact_log=ArtifactLog(settings.storage.artifact_log_path),
        summarizer=AnthropicSummarizer(
            api_key=settings.llm.anthropic_api_key,
            model=settings.llm.model_name,
            temperature=settings.llm.temperature,
            max_tokens=settings.llm.max_tokens,
            timeout=settings.llm.timeout,
            rollup_timeout=settings.llm.rollup_timeout,
            audience=settings.llm.audience,
        ),
        deliverer=EmailDeliverer(
            api_key=settings.email.resend_api_key,
            to=settings.email.to,
            from_address=settings.email.from_address,
            api_url=settings.email.api_url,
            policy=RetryPolicy(max_attempts=settings.email.max_attempts, base_delay=settings.email.retry_delay),
            timezone=settings.general.timezone,
        ),
        settings=settings,
        heartbeat=build_heartbeat(settings.digest.heartbeat_url, settings.digest.heartbeat_interval),
    )


def get_orchestrator() -> DigestOrchestrator:
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        _ORCHESTRATOR = build_orchestrator()
    return _ORCHESTRATOR


def get_scheduler() -> DigestScheduler:
    global _SCHEDULER
    if _SCHEDULER is None:
        orchestrator = get_orchestrator()
        digest = orchestrator.settings.digest
        _SCHEDULER = DigestScheduler(
            orchestrator,
            run_at=digest.run_at,
            sweep_weekday=digest.sweep_weekday,
            timezone=orchestrator.settings.general.timezone,
        )
    return _SCHEDULER
