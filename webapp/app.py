"""Web surface: digest trigger, run status and the read API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
import logging
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field, field_validator

from core import Artifact, RecordQuery
from orchestrator import DigestOrchestrator, DigestScheduler


logger = logging.getLogger(__name__)


class InsightsRequest(BaseModel):
    category: str = Field(default="all", description="Artifact category")
    refresh: bool = Field(default=False, description="Skip the freshness lookup and regenerate")

    @field_validator("category")
    @classmethod
    def _validate_category(cls, value: str) -> str:
        return str(value or "").strip() or "all"


def _artifact_payload(artifact: Artifact) -> Dict[str, Any]:
    return artifact.model_dump(mode="json")


def create_app(
    orchestrator: Optional[DigestOrchestrator] = None,
    scheduler: Optional[DigestScheduler] = None,
    *,
    enable_scheduler: Optional[bool] = None,
) -> FastAPI:
    """Build the app; collaborators default to the runtime singletons on first use."""

    def _orchestrator() -> DigestOrchestrator:
        nonlocal orchestrator
        if orchestrator is None:
            from webapp.runtime import get_orchestrator
            orchestrator = get_orchestrator()
        return orchestrator

    def _scheduler() -> DigestScheduler:
        nonlocal scheduler
        if scheduler is None:
            from webapp.runtime import get_scheduler
            scheduler = get_scheduler()
        return scheduler

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        enabled = enable_scheduler
        if enabled is None:
            enabled = _orchestrator().settings.digest.scheduler_enabled
        if enabled:
            _scheduler().start()
        try:
            yield
        finally:
            if enabled:
                await _scheduler().stop()

    app = FastAPI(title="Signal Digest", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", include_in_schema=False)
    async def root() -> RedirectResponse:
        return RedirectResponse(url="/health")

    @app.get("/run-digest")
    async def run_digest(token: Optional[str] = None) -> JSONResponse:
        result = _orchestrator().trigger(token)
        if not result.accepted:
            return JSONResponse({"error": "unauthorized"}, status_code=401)
        return JSONResponse({"status": "started"})

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse(_orchestrator().status())

    @app.get("/api/articles")
    async def list_articles(
        source: Optional[str] = None,
        category: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        keyword: Optional[str] = None,
        limit: Optional[int] = Query(default=None, ge=1),
    ) -> List[Dict[str, Any]]:
        query = RecordQuery(source=source, category=category, start=start, end=end, keyword=keyword, limit=limit)
        records = await _orchestrator().content_store.query(query)
        return [record.model_dump(mode="json") for record in records]

    @app.get("/api/sources")
    async def list_sources() -> List[str]:
        return await _orchestrator().content_store.list_sources()

    @app.get("/api/categories")
    async def list_categories() -> List[str]:
        return await _orchestrator().content_store.list_categories()

    @app.post("/api/refresh")
    async def refresh(background_tasks: BackgroundTasks) -> Dict[str, str]:
        background_tasks.add_task(_orchestrator().fetch_now)
        return {"status": "refreshing"}

    @app.post("/api/insights")
    async def insights(req: InsightsRequest) -> Dict[str, Any]:
        artifact = await _orchestrator().get_or_generate_insights(req.category, refresh=req.refresh)
        return _artifact_payload(artifact)

    @app.delete("/api/insights/cache")
    async def clear_insights_cache(category: Optional[str] = None) -> Dict[str, Any]:
        _orchestrator().artifact_store.evict(category)
        return {"status": "cleared", "category": category or "all"}

    @app.get("/api/insights/history")
    async def insights_history(
        category: Optional[str] = None,
        limit: int = Query(default=20, ge=1, le=100),
        offset: int = Query(default=0, ge=0),
    ) -> List[Dict[str, Any]]:
        artifacts = await _orchestrator().artifact_store.list_history(category, limit=limit, offset=offset)
        return [_artifact_payload(item) for item in artifacts]

    @app.get("/api/insights/history/{artifact_id}")
    async def insights_history_item(artifact_id: int) -> Dict[str, Any]:
        artifact = await _orchestrator().artifact_store.get_by_id(artifact_id)
        if artifact is None:
            raise HTTPException(status_code=404, detail="artifact not found")
        return _artifact_payload(artifact)

    @app.get("/api/insights/search")
    async def insights_search(q: str = "", limit: int = Query(default=20, ge=1, le=100)) -> List[Dict[str, Any]]:
        if not q.strip():
            raise HTTPException(status_code=400, detail="q is required")
        artifacts = await _orchestrator().artifact_store.search(q, limit=limit)
        return [_artifact_payload(item) for item in artifacts]

    return app


app = create_app()
