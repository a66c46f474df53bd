from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Iterable

from .ledger import DeliveryLedger, LedgerConflictError
from .models import DeliveryRecord, DispatchOutcome, DispatchResult, Milestone, PolicySnapshot
from .notifier import MessageSender, mask_contact_target
from .renderer import render_renewal_message

logger = logging.getLogger(__name__)

Renderer = Callable[[PolicySnapshot, Milestone], str]


class ReminderDispatcher:
    """Sends one milestone's reminders and writes exactly one ledger row per attempt.

    The ledger's ``record`` call is the linearization point: a conflict there
    means another run got to the pair first and the attempt counts as skipped.
    """

    def __init__(
        self,
        *,
        ledger: DeliveryLedger,
        sender: MessageSender,
        renderer: Renderer = render_renewal_message,
    ) -> None:
        self._ledger = ledger
        self._sender = sender
        self._renderer = renderer

    def dispatch_for_milestone(
        self,
        milestone: Milestone,
        due_policies: Iterable[PolicySnapshot],
        *,
        target_date: date | None = None,
    ) -> DispatchOutcome:
        outcome = DispatchOutcome(milestone_id=milestone.milestone_id, target_date=target_date)
        for policy in due_policies:
            outcome.total += 1
            try:
                result = self._dispatch_one(milestone, policy)
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "unexpected error dispatching %s reminder for policy %s",
                    milestone.milestone_id,
                    policy.policy_number,
                )
                result = DispatchResult(
                    policy_id=policy.policy_id,
                    status="failed",
                    reason="unexpected_error",
                    error_message=str(exc) or exc.__class__.__name__,
                )
            outcome.add(result)

        logger.info(
            "%s summary - total: %d, sent: %d, skipped: %d, failed: %d",
            milestone.milestone_id,
            outcome.total,
            outcome.sent,
            outcome.skipped,
            outcome.failed,
        )
        return outcome

    def _dispatch_one(self, milestone: Milestone, policy: PolicySnapshot) -> DispatchResult:
        if not policy.is_active:
            logger.debug("skipping inactive policy %s (%s)", policy.policy_number, policy.status)
            return DispatchResult(policy_id=policy.policy_id, status="skipped", reason="inactive")

        if self._ledger.exists(policy.policy_id, milestone.milestone_id):
            logger.debug(
                "reminder already recorded for policy %s - %s",
                policy.policy_number,
                milestone.milestone_id,
            )
            return DispatchResult(policy_id=policy.policy_id, status="skipped", reason="already_recorded")

        body = self._renderer(policy, milestone)
        record = self._send(milestone, policy, body)

        try:
            self._ledger.record(record)
        except LedgerConflictError:
            logger.info(
                "concurrent run recorded policy %s - %s first; counting as skipped",
                policy.policy_number,
                milestone.milestone_id,
            )
            return DispatchResult(policy_id=policy.policy_id, status="skipped", reason="recorded_concurrently")

        if record.status == "SENT":
            logger.info(
                "reminder sent for policy %s to %s",
                policy.policy_number,
                mask_contact_target(policy.client_phone),
            )
            return DispatchResult(policy_id=policy.policy_id, status="sent", reason="sent")
        return DispatchResult(
            policy_id=policy.policy_id,
            status="failed",
            reason=record.error_code or "send_failed",
            error_message=record.error_message,
        )

    def _send(self, milestone: Milestone, policy: PolicySnapshot, body: str) -> DeliveryRecord:
        base = {
            "policy_id": policy.policy_id,
            "policy_number": policy.policy_number,
            "milestone_id": milestone.milestone_id,
            "recipient": policy.client_phone,
            "body": body,
        }
        try:
            result = self._sender.send(policy.client_phone, body)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "sender raised for policy %s - %s: %s",
                policy.policy_number,
                milestone.milestone_id,
                exc,
            )
            return DeliveryRecord(
                **base,
                status="FAILED",
                error_code="sender_exception",
                error_message=str(exc) or exc.__class__.__name__,
            )

        if result.ok:
            return DeliveryRecord(**base, status="SENT", provider_message_id=result.provider_message_id)

        logger.warning(
            "send failed for policy %s - %s: %s",
            policy.policy_number,
            milestone.milestone_id,
            result.error_message or result.error_code,
        )
        return DeliveryRecord(
            **base,
            status="FAILED",
            provider_message_id=result.provider_message_id,
            error_code=result.error_code or "send_failed",
            error_message=result.error_message or "sender reported a failed delivery",
        )
