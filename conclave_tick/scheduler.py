"""Interval scheduler for hosts without an external cron.

Each job run loads settings and builds fresh collaborators, so ticks share
no state beyond the process itself.
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import Callable, Optional, Sequence

from apscheduler.schedulers.blocking import BlockingScheduler

from .config import ConfigurationError, get_settings, is_on
from .models import TickOutcome
from .tick import report_crash, run_tick

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MINUTES = 10


class TickScheduler:
    """Runs the Conclave tick on a fixed interval via APScheduler."""

    def __init__(
        self,
        *,
        interval_minutes: int = DEFAULT_INTERVAL_MINUTES,
        dry_run: bool = False,
        tick: Optional[Callable[..., TickOutcome]] = None,
    ) -> None:
        if interval_minutes < 1:
            raise ValueError("interval_minutes must be at least 1")
        self.interval_minutes = interval_minutes
        self.dry_run = dry_run
        self._tick = tick or run_tick
        self.scheduler = BlockingScheduler()

    def _run_once(self) -> None:
        try:
            settings = get_settings()
        except ConfigurationError as exc:
            logger.error("Skipping tick, configuration error: %s", exc)
            return
        try:
            outcome = self._tick(settings, dry_run=self.dry_run)
        except Exception as exc:
            logger.exception("Scheduled tick failed")
            report_crash(exc, settings)
            return
        logger.info("Scheduled tick finished: %s %s", outcome.action, outcome.detail)

    def start(self) -> None:
        self.scheduler.add_job(
            self._run_once,
            "interval",
            minutes=self.interval_minutes,
            id="conclave_tick",
            max_instances=1,
            coalesce=True,
        )
        logger.info("Conclave tick scheduled every %d minutes", self.interval_minutes)
        self._run_once()
        self.scheduler.start()

    def shutdown(self) -> None:
        self.scheduler.shutdown(wait=False)


def main(argv: Optional[Sequence[str]] = None) -> int:  # pragma: no cover - CLI entry point
    parser = argparse.ArgumentParser(description="Run the Conclave tick on an interval.")
    parser.add_argument(
        "--interval-minutes",
        type=int,
        default=int(os.getenv("CONCLAVE_TICK_INTERVAL_MINUTES", DEFAULT_INTERVAL_MINUTES)),
        help="Minutes between ticks (default: 10)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Do not send mutations")
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if is_on(os.getenv("CONCLAVE_TICK_DEBUG")) else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    scheduler = TickScheduler(interval_minutes=args.interval_minutes, dry_run=args.dry_run)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down tick scheduler")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
