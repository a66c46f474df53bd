from __future__ import annotations

from fastapi import APIRouter, Query

from .config import get_settings
from .dispatcher import ReminderDispatcher
from .ledger import DeliveryLedger, create_delivery_ledger
from .models import (
    DeliveryListResponse,
    DeliveryRecordItem,
    DeliveryStatus,
    MilestoneItem,
    MilestoneListResponse,
    ReminderRunRequest,
    ReminderRunResponse,
    build_milestones,
)
from .notifier import MessageSender, create_message_sender, mask_contact_target
from .policies import PolicyDirectory, create_policy_directory
from .scheduler import RenewalScheduler, local_now, resolve_timezone

_settings = get_settings()
router = APIRouter(prefix=f"{_settings.api_prefix}/renewals", tags=["renewals"])

milestones = build_milestones(_settings.milestone_days())
reminder_timezone = resolve_timezone(_settings.reminder_timezone)
delivery_ledger: DeliveryLedger = create_delivery_ledger(
    backend=_settings.reminder_ledger_backend,
    database_url=_settings.database_url,
)
policy_directory: PolicyDirectory = create_policy_directory(
    backend=_settings.policy_directory_backend,
    database_url=_settings.database_url,
)
message_sender: MessageSender = create_message_sender(_settings)


def reset_runtime_state_for_tests() -> None:
    delivery_ledger.reset()
    reset_policies = getattr(policy_directory, "reset", None)
    if reset_policies is not None:
        reset_policies()


def _active_scheduler() -> RenewalScheduler:
    # Resolved per request so tests can swap the module-level collaborators.
    return RenewalScheduler(
        policies=policy_directory,
        dispatcher=ReminderDispatcher(ledger=delivery_ledger, sender=message_sender),
        milestones=milestones,
        clock=lambda: local_now(reminder_timezone).date(),
    )


@router.post("/reminders/run", response_model=ReminderRunResponse)
def run_renewal_reminders(payload: ReminderRunRequest | None = None) -> ReminderRunResponse:
    scheduler = _active_scheduler()
    request_payload = payload or ReminderRunRequest()
    if request_payload.today is None:
        report = scheduler.trigger()
    else:
        report = scheduler.run_daily(request_payload.today)
    return ReminderRunResponse.from_report(report)


@router.get("/reminders/deliveries", response_model=DeliveryListResponse)
def list_deliveries(
    policy_id: str | None = None,
    status: DeliveryStatus | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
) -> DeliveryListResponse:
    records = delivery_ledger.list_records(policy_id=policy_id, status=status, limit=limit)
    return DeliveryListResponse(
        items=[
            DeliveryRecordItem(
                policy_id=record.policy_id,
                policy_number=record.policy_number,
                milestone_id=record.milestone_id,
                recipient_masked=mask_contact_target(record.recipient),
                body=record.body,
                status=record.status,
                provider_message_id=record.provider_message_id,
                error_code=record.error_code,
                error_message=record.error_message,
                created_at=record.created_at,
            )
            for record in records
        ]
    )


@router.get("/reminders/milestones", response_model=MilestoneListResponse)
def list_milestones() -> MilestoneListResponse:
    return MilestoneListResponse(
        schedule_time=_settings.schedule_time().strftime("%H:%M"),
        timezone=_settings.reminder_timezone.strip() or None,
        items=[
            MilestoneItem(milestone_id=value.milestone_id, lead_days=value.lead_days, tone=value.tone)
            for value in milestones
        ],
    )
