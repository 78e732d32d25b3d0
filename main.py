"""CLI entrypoint: serve the web surface or run pipeline phases once."""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Optional, Sequence

import uvicorn

from config import get_settings
from utils.logger import setup_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Signal digest pipeline")
    parser.add_argument("--log-level", default=None, help="Logging level (default: GENERAL_LOG_LEVEL)")
    parser.add_argument("--log-file", default=None, help="Log file, relative paths land in GENERAL_LOG_DIR")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the web surface with the built-in scheduler")
    serve.add_argument("--host", type=str, default="0.0.0.0", help="Bind host")
    serve.add_argument("--port", type=int, default=3001, help="Bind port")
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload")

    sub.add_parser("run", help="Run one full digest now")
    sub.add_parser("fetch", help="Fetch every source into the store")
    sub.add_parser("sweep", help="Delete records past the retention horizon")

    history = sub.add_parser("history", help="List archived artifacts before today")
    history.add_argument("--category", default=None)
    history.add_argument("--limit", type=int, default=10)
    return parser


async def _run(args: argparse.Namespace) -> dict:
    from webapp.runtime import get_orchestrator

    orchestrator = get_orchestrator()

    if args.command == "run":
        artifact = await orchestrator.run_digest()
        return {
            "artifact": artifact.model_dump(mode="json") if artifact else None,
            "state": orchestrator.state.as_dict(),
        }

    if args.command == "fetch":
        report = await orchestrator.fetch_now()
        return {
            "total": report.total,
            "stored": report.stored,
            "per_source": report.per_source,
            "failed_sources": report.failed_sources,
        }

    if args.command == "sweep":
        return {"removed": await orchestrator.sweep()}

    if args.command == "history":
        artifacts = await orchestrator.artifact_store.list_history(args.category, limit=args.limit)
        return {"artifacts": [item.model_dump(mode="json") for item in artifacts]}

    raise ValueError(f"unknown command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logger(args.log_level, args.log_file, settings=get_settings())

    if args.command == "serve":
        uvicorn.run("webapp.app:app", host=args.host, port=args.port, reload=args.reload)
        return 0

    payload = asyncio.run(_run(args))
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
