"""Append-only JSON Lines log of completed digest runs."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from core import Artifact


logger = logging.getLogger(__name__)


class ArtifactLog:
    """One JSON object per line; lines are only ever appended."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def append(self, artifact: Artifact, **extra: Any) -> None:
        payload: Dict[str, Any] = artifact.model_dump(mode="json")
        payload.update(extra)
        line = json.dumps(payload, ensure_ascii=False)
        await asyncio.to_thread(self._write_line, line)
        logger.info("[Log] appended %s artifact to %s", artifact.category, self.path)

    def _write_line(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    async def read_recent(self, count: int = 5) -> List[Artifact]:
        """Last ``count`` logged artifacts, newest first."""
        return await asyncio.to_thread(self._read_recent, count)

    def _read_recent(self, count: int) -> List[Artifact]:
        if count <= 0 or not self.path.exists():
            return []

        lines = self.path.read_text(encoding="utf-8").splitlines()
        artifacts: List[Artifact] = []
        for line in reversed(lines):
            if len(artifacts) >= count:
                break
            if not line.strip():
                continue
            try:
                artifacts.append(Artifact.model_validate(json.loads(line)))
            except ValueError as exc:
                logger.warning("[Log] skipping malformed line in %s: %s", self.path, exc)
        return artifacts
