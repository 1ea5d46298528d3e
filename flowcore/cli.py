#!/usr/bin/env python3
"""
flowcore Command Line Interface

Runs the engine against a JSON activity snapshot and prints JSON results.

Usage:
    flowcore --action context --snapshot activity.json
    flowcore --action report --snapshot activity.json --now 2026-03-02T19:30:00
    flowcore --action memory --snapshot activity.json --db data/flowcore.db
    flowcore --action profile --snapshot activity.json --memory-store
    flowcore --action status --snapshot activity.json

Snapshot format (all keys optional):
    {
      "settings": {"daily_goal_minutes": 60, "display_name": "Sam Lee"},
      "sessions": [{"id": "s1", "date": "2026-03-02T09:00:00", "duration_seconds": 1500}],
      "tasks": [{"id": "t1", "title": "Email", "duration_minutes": 10}],
      "presets": [{"id": "p1", "name": "Deep Work", "duration_seconds": 3000}],
      "active_preset_id": "p1",
      "focus": {"is_active": true, "remaining_minutes": 12}
    }
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from flowcore import __version__
from flowcore.config_models import load_config
from flowcore.context.assembler import ContextAssembler
from flowcore.learning.behavior_analyzer import render_report
from flowcore.logging_config import get_logger, setup_logging
from flowcore.sources import sources_from_snapshot
from flowcore.storage import InMemoryStore, PersistentStore, SqliteStore, StorageError

logger = get_logger(__name__)


def _load_snapshot(path: Optional[str]) -> dict[str, Any]:
    if not path:
        return {}
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("snapshot must be a JSON object")
    return data


def build_assembler(args: argparse.Namespace) -> ContextAssembler:
    config = load_config(Path(args.config) if args.config else None)
    sources = sources_from_snapshot(_load_snapshot(args.snapshot))

    store: Optional[PersistentStore] = None
    if args.memory_store:
        store = InMemoryStore()
    elif args.db:
        store = SqliteStore(args.db)

    if args.now:
        fixed_now = datetime.fromisoformat(args.now)
        clock = lambda: fixed_now  # noqa: E731
    else:
        clock = datetime.now

    return ContextAssembler.from_config(
        sessions=sources["sessions"],
        tasks=sources["tasks"],
        presets=sources["presets"],
        settings=sources["settings"],
        focus=sources["focus"],
        config=config,
        store=store,
        clock=clock,
    )


def run_action(assembler: ContextAssembler, action: str) -> dict[str, Any]:
    if action == "context":
        context = assembler.build_context()
        return {"success": True, "context": context, "characters": len(context)}

    if action == "report":
        report = assembler.generate_intelligence_report()
        return {
            "success": True,
            "report": report.to_dict(),
            "rendered": render_report(report, assembler.config.analyzer.max_signals_rendered),
        }

    if action == "memory":
        memory = assembler.memory
        return {
            "success": True,
            "memory": memory.memory.to_dict(),
            "patterns": memory.patterns.to_dict(),
            "conversation_summaries": len(memory.conversation_summaries),
            "session_insights": len(memory.session_insights),
            "greeting": memory.personalized_greeting(),
        }

    if action == "profile":
        sessions = assembler.sessions.current_sessions()
        persona = assembler.profile.infer_persona(sessions)
        return {
            "success": True,
            "persona_updated": persona is not None,
            "profile": assembler.profile.profile.to_dict(),
            "context": assembler.profile.build_profile_context(),
        }

    if action == "status":
        return {
            "success": True,
            "version": __version__,
            "cache": assembler.cache.stats(),
            "total_sessions": assembler.memory.memory.total_sessions,
            "returning_user": assembler.memory.is_returning_user,
        }

    return {"success": False, "error": f"Unknown action: {action}"}


def main():
    parser = argparse.ArgumentParser(
        description="flowcore - context and memory engine for the Flow assistant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Print the assembled system prompt
    flowcore --action context --snapshot activity.json

    # Intelligence report at a fixed time, without touching the database
    flowcore --action report --snapshot activity.json --now 2026-03-02T19:30:00 --memory-store
        """,
    )
    parser.add_argument(
        "--action",
        required=True,
        choices=["context", "report", "memory", "profile", "status"],
        help="Action to perform",
    )
    parser.add_argument("--snapshot", help="JSON file with sessions, tasks, presets and settings")
    parser.add_argument("--config", help="YAML config file (default: args/flowcore.yaml)")
    parser.add_argument("--db", help="SQLite database path (overrides config)")
    parser.add_argument(
        "--memory-store", action="store_true", help="Use a throwaway in-memory store"
    )
    parser.add_argument("--now", help="ISO timestamp to use as the current time")
    parser.add_argument("--log-level", default=None, help="Log level (default: INFO)")
    parser.add_argument("--version", action="version", version=f"flowcore {__version__}")

    args = parser.parse_args()
    setup_logging(level=args.log_level)

    try:
        assembler = build_assembler(args)
    except (OSError, KeyError, ValueError, StorageError) as e:
        logger.error(f"Could not start engine: {e}")
        print(json.dumps({"success": False, "error": str(e)}))
        sys.exit(1)

    try:
        result = run_action(assembler, args.action)
    finally:
        assembler.close()
    logger.debug(f"Action '{args.action}' finished (success={result.get('success')})")

    print(json.dumps(result, indent=2, default=str))
    if not result.get("success"):
        sys.exit(1)


if __name__ == "__main__":
    main()
