"""
TrustGraph Scheduled Jobs
=========================

Command-line entry point for cron or a platform scheduler.

Commands:
    sweep             Expiry and overdue-action sweeps, then the health queue
    recompute-health  Drain the health recompute queue (--all: every organisation)

Usage:
    trustgraph-jobs sweep --reason "Nightly sweep"
    trustgraph-jobs recompute-health --limit 100
    trustgraph-jobs recompute-health --all

Exit status is 0 on success, 1 when the store is unavailable or the
job failed, so the scheduler retries.

Author: TrustGraph Team
Version: 1.0.0
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from trustgraph.api.dependencies import ServiceContainer
from trustgraph.config import Settings, settings as default_settings
from trustgraph.errors import TrustGraphError
from trustgraph.logging import get_logger, setup_logging
from trustgraph.service import SYSTEM_ACTOR, TrustGraphService


logger = get_logger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trustgraph-jobs",
        description="Scheduled TrustGraph jobs",
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    commands = parser.add_subparsers(dest="command", required=True)

    sweep = commands.add_parser("sweep", help="Run expiry and overdue-action sweeps")
    sweep.add_argument("--organisation", default=None, help="Limit the sweep to one organisation")
    sweep.add_argument("--actor", default=SYSTEM_ACTOR)
    sweep.add_argument("--reason", default="Scheduled sweep")

    recompute = commands.add_parser("recompute-health", help="Recompute organisation health snapshots")
    recompute.add_argument("--all", dest="full", action="store_true", help="Recompute every organisation")
    recompute.add_argument("--limit", type=int, default=None, help="Most queued organisations to process")
    return parser


async def run_sweep(service: TrustGraphService, args: argparse.Namespace) -> Dict[str, Any]:
    expiry = await service.sweep_expiry(args.actor, args.reason, args.organisation)
    actions = await service.sweep_overdue_actions(args.actor, args.reason, args.organisation)
    health = await service.process_health_queue()
    return {"expiry": expiry.to_dict(), "actions": actions.to_dict(), "health": health.to_dict()}


async def run_recompute(service: TrustGraphService, args: argparse.Namespace) -> Dict[str, Any]:
    if args.full:
        recomputed = await service.recompute_all_health()
        return {"recomputed_count": len(recomputed), "recomputed": recomputed}
    result = await service.process_health_queue(args.limit)
    return result.to_dict()


COMMANDS = {
    "sweep": run_sweep,
    "recompute-health": run_recompute,
}


async def run(args: argparse.Namespace, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Run one command against a freshly initialised container."""
    container = ServiceContainer(settings or default_settings)
    await container.initialize()
    try:
        if container.service is None or container.degraded:
            raise RuntimeError(f"Store unavailable (backend: {container.store_backend or 'none'})")
        return await COMMANDS[args.command](container.service, args)
    finally:
        await container.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(level=args.log_level or default_settings.log_level, json_output=not default_settings.debug)
    try:
        result = asyncio.run(run(args))
    except (TrustGraphError, RuntimeError) as e:
        logger.error("job_failed", command=args.command, error=str(e))
        return 1
    print(json.dumps(result, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
