"""Autotee process entry-point.

Usage:
    python -m autotee [run|once|status] [--log-level LEVEL] [--log-format FORMAT]

* ``run`` (default): poll continuously until a tee time is booked, a
  permanent error occurs, or the process receives SIGTERM/SIGINT.
* ``once``: run a single immediate check and exit.
* ``status``: print the persisted job status and queue counts.

The module stays thin: it configures logging first, then hands off to
:mod:`autotee.orchestrator.runner`.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time

from autotee.core.exceptions import AutoteeError, ConfigError
from autotee.core.logging_config import configure_logging
from autotee.core.models import JobPhase, JobStatus
from autotee.core.settings import Settings, load_settings


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autotee",
        description="Automatic tee time acquisition engine.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=("run", "once", "status"),
        help="run: poll continuously (default); once: a single check; status: show queue state.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    return parser


async def _show_status(settings: Settings) -> dict[str, object]:
    from autotee.orchestrator.scheduler import describe_status  # noqa: PLC0415
    from autotee.storage.database import open_db  # noqa: PLC0415
    from autotee.storage.job_store import JobStore  # noqa: PLC0415

    conn = await open_db(settings.database_path_resolved)
    try:
        store = JobStore(conn)
        status = await describe_status(store)
        metrics = await store.counts(time.time())
    finally:
        await conn.close()
    return {"status": status.model_dump(mode="json"), "queue": metrics.as_dict()}


def _exit_code(status: JobStatus) -> int:
    return 1 if status.phase == JobPhase.FAILED else 0


def main() -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = _build_parser().parse_args()

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"autotee: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)

    from autotee.orchestrator.runner import run_engine, run_once  # noqa: PLC0415

    try:
        settings = load_settings()
        if args.command == "status":
            print(json.dumps(asyncio.run(_show_status(settings)), indent=2))  # noqa: T201
            return
        logger.info("Autotee starting (%s)", args.command)
        if args.command == "once":
            status = asyncio.run(run_once(settings))
        else:
            status = asyncio.run(run_engine(settings))
        logger.info("Final status: %s (%s)", status.phase, status.last_error or "no error")
        sys.exit(_exit_code(status))
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)
    except AutoteeError as exc:
        logger.critical("Fatal error: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting.")
        sys.exit(0)


if __name__ == "__main__":
    main()
