#!/usr/bin/env python3
"""Run the renewal reminder job from cron, a container timer, or by hand."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
BACKEND_SRC = ROOT_DIR / "backend" / "src"
if str(BACKEND_SRC) not in sys.path:
    sys.path.insert(0, str(BACKEND_SRC))

from renewal_reminders.config import get_settings, runtime_config_issues  # noqa: E402
from renewal_reminders.models import ReminderRunResponse  # noqa: E402
from renewal_reminders.scheduler import DailyTrigger, build_renewal_scheduler, resolve_timezone  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send renewal reminders for policies reaching a milestone.")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Run as if today were YYYY-MM-DD (backfill). Defaults to today in REMINDER_TIMEZONE.",
    )
    mode.add_argument(
        "--serve",
        action="store_true",
        help="Stay running and fire once a day at REMINDER_SCHEDULE_TIME.",
    )
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    settings = get_settings()
    issues = runtime_config_issues(settings)
    for issue in issues:
        logging.getLogger(__name__).warning("configuration guard warning: %s", issue)
    if issues and settings.config_guard_mode == "enforce":
        return 2

    scheduler = build_renewal_scheduler(settings)

    if args.serve:
        trigger = DailyTrigger(
            scheduler,
            fire_at=settings.schedule_time(),
            tz=resolve_timezone(settings.reminder_timezone),
        )
        trigger.serve_forever()
        return 0

    report = scheduler.run_daily(args.date) if args.date is not None else scheduler.trigger()
    print(json.dumps(ReminderRunResponse.from_report(report).model_dump(mode="json"), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
