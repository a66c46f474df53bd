from __future__ import annotations

import logging
import time as time_module
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Callable, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import Settings
from .dispatcher import ReminderDispatcher
from .ledger import create_delivery_ledger
from .models import DispatchOutcome, Milestone, MilestoneError, RenewalRunReport, build_milestones
from .notifier import create_message_sender
from .policies import PolicyDirectory, create_policy_directory

logger = logging.getLogger(__name__)


def resolve_timezone(name: str) -> tzinfo | None:
    """Return the named zone, or ``None`` for the server's local time."""
    normalized = name.strip()
    if not normalized:
        return None
    try:
        return ZoneInfo(normalized)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown REMINDER_TIMEZONE %r; using server local time", name)
        return None


def local_now(tz: tzinfo | None) -> datetime:
    """Current wall-clock time; naive server local time when no zone is configured."""
    if tz is None:
        return datetime.now()
    return datetime.now(tz)


class RenewalScheduler:
    """Daily renewal run. Holds no state between runs; the ledger remembers everything."""

    def __init__(
        self,
        *,
        policies: PolicyDirectory,
        dispatcher: ReminderDispatcher,
        milestones: Sequence[Milestone] | None = None,
        clock: Callable[[], date] | None = None,
    ) -> None:
        self._policies = policies
        self._dispatcher = dispatcher
        self._milestones = tuple(
            sorted(milestones or build_milestones(), key=lambda value: value.lead_days, reverse=True)
        )
        self._clock = clock or date.today

    @property
    def milestones(self) -> tuple[Milestone, ...]:
        return self._milestones

    def trigger(self) -> RenewalRunReport:
        """Zero-argument entry point shared by the timer and manual invocations."""
        return self.run_daily(self._clock())

    def run_daily(self, today: date) -> RenewalRunReport:
        logger.info("=== starting renewal reminder run for %s ===", today.isoformat())
        report = RenewalRunReport(today=today)
        for milestone in self._milestones:
            try:
                report.outcomes.append(self._run_milestone(milestone, today))
            except Exception as exc:  # noqa: BLE001
                logger.exception("renewal run failed for milestone %s", milestone.milestone_id)
                report.errors.append(
                    MilestoneError(
                        milestone_id=milestone.milestone_id,
                        message=str(exc) or exc.__class__.__name__,
                    )
                )
        logger.info(
            "=== renewal reminder run for %s finished - sent: %d, skipped: %d, failed: %d, milestone errors: %d ===",
            today.isoformat(),
            report.sent_count,
            report.skipped_count,
            report.failed_count,
            len(report.errors),
        )
        return report

    def _run_milestone(self, milestone: Milestone, today: date) -> DispatchOutcome:
        target = today + timedelta(days=milestone.lead_days)
        logger.info("processing %s reminders for expiry date %s", milestone.milestone_id, target.isoformat())
        due = self._policies.find_active_policies_expiring_on(target)
        if not due:
            logger.info("no policies expiring on %s", target.isoformat())
            return DispatchOutcome(milestone_id=milestone.milestone_id, target_date=target)
        logger.info("found %d policies expiring on %s", len(due), target.isoformat())
        return self._dispatcher.dispatch_for_milestone(milestone, due, target_date=target)


class DailyTrigger:
    """Fires ``scheduler.trigger()`` once a day at a fixed wall-clock time."""

    def __init__(
        self,
        scheduler: RenewalScheduler,
        *,
        fire_at: time = time(9, 0),
        tz: tzinfo | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._fire_at = fire_at
        self._tz = tz

    def next_fire_after(self, now: datetime) -> datetime:
        candidate = datetime.combine(now.date(), self._fire_at, tzinfo=now.tzinfo)
        if candidate <= now:
            candidate = datetime.combine(now.date() + timedelta(days=1), self._fire_at, tzinfo=now.tzinfo)
        return candidate

    def serve_forever(
        self,
        *,
        sleep: Callable[[float], None] = time_module.sleep,
        now: Callable[[], datetime] | None = None,
        max_runs: int | None = None,
    ) -> int:
        current = now or (lambda: local_now(self._tz))
        runs = 0
        while max_runs is None or runs < max_runs:
            moment = current()
            fire_at = self.next_fire_after(moment)
            # Compare absolute instants; same-zone subtraction ignores DST shifts.
            wait_seconds = max(0.0, fire_at.timestamp() - moment.timestamp())
            logger.info("next renewal run at %s (in %.0f seconds)", fire_at.isoformat(), wait_seconds)
            sleep(wait_seconds)
            try:
                self._scheduler.trigger()
            except Exception:  # noqa: BLE001
                logger.exception("renewal trigger crashed; waiting for the next fire time")
            runs += 1
        return runs


def build_renewal_scheduler(settings: Settings) -> RenewalScheduler:
    tz = resolve_timezone(settings.reminder_timezone)
    ledger = create_delivery_ledger(
        backend=settings.reminder_ledger_backend,
        database_url=settings.database_url,
    )
    policies = create_policy_directory(
        backend=settings.policy_directory_backend,
        database_url=settings.database_url,
    )
    dispatcher = ReminderDispatcher(ledger=ledger, sender=create_message_sender(settings))
    return RenewalScheduler(
        policies=policies,
        dispatcher=dispatcher,
        milestones=build_milestones(settings.milestone_days()),
        clock=lambda: local_now(tz).date(),
    )
