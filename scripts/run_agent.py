#!/usr/bin/env python3
"""Run one index execution agent (poller) against the coordinator."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from safeddl.config import settings
from safeddl.core.coordinator_client import CoordinatorClient
from safeddl.core.kill_switch import KillSwitchGate
from safeddl.core.orchestrator import ExecutionOrchestrator
from safeddl.core.poller import Poller


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Poll the coordinator and run approved ADD INDEX executions."
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll cycle and exit.",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between poll cycles (default: POLL_INTERVAL_SECONDS).",
    )
    parser.add_argument(
        "--observation-minutes",
        type=int,
        default=None,
        help="Minutes to observe before the after-sample (default: OBSERVATION_WINDOW_MINUTES).",
    )
    parser.add_argument(
        "--agent-id",
        default=None,
        help="Agent identifier sent with claims (default: AGENT_ID).",
    )
    return parser


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format=settings.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(settings.LOG_FILE)
            if settings.LOG_FILE
            else logging.NullHandler(),
        ],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("aiomysql").setLevel(logging.WARNING)


def build_poller(args: argparse.Namespace) -> Poller:
    coordinator = CoordinatorClient(agent_id=args.agent_id)
    kill_switch = KillSwitchGate()
    orchestrator = ExecutionOrchestrator(
        coordinator,
        kill_switch=kill_switch,
        observation_window_minutes=args.observation_minutes,
    )
    return Poller(
        coordinator,
        orchestrator=orchestrator,
        kill_switch=kill_switch,
        poll_interval_seconds=args.poll_interval,
    )


async def _run_agent(args: argparse.Namespace) -> int:
    poller = build_poller(args)

    if args.once:
        outcomes = await poller.poll_once()
        print(f"[agent] processed {len(outcomes)} execution(s)")
        return 0

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, poller.stop)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass

    await poller.run()
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    _configure_logging()
    try:
        return asyncio.run(_run_agent(args))
    except KeyboardInterrupt:
        print("[agent] interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
