from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

DeliveryStatus = Literal["SENT", "FAILED", "PENDING"]
DispatchResultStatus = Literal["sent", "skipped", "failed"]
MilestoneTone = Literal["normal", "urgent"]

ACTIVE_POLICY_STATUS = "ACTIVE"
DEFAULT_MILESTONE_DAYS: tuple[int, ...] = (7, 3)

_NUMBER_WORDS = {
    1: "ONE",
    2: "TWO",
    3: "THREE",
    4: "FOUR",
    5: "FIVE",
    6: "SIX",
    7: "SEVEN",
    8: "EIGHT",
    9: "NINE",
    10: "TEN",
    14: "FOURTEEN",
    15: "FIFTEEN",
    21: "TWENTY_ONE",
    30: "THIRTY",
}


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PolicySnapshot:
    """Read-only view of a policy and its client, as supplied by the policy directory."""

    policy_id: str
    policy_number: str
    policy_type: str
    expiry_date: date
    premium: Decimal | None
    client_name: str
    client_phone: str
    premium_frequency: str = "YEARLY"
    status: str = ACTIVE_POLICY_STATUS

    @property
    def is_active(self) -> bool:
        return self.status.strip().upper() == ACTIVE_POLICY_STATUS


@dataclass(frozen=True)
class Milestone:
    milestone_id: str
    lead_days: int
    tone: MilestoneTone = "normal"

    @property
    def is_urgent(self) -> bool:
        return self.tone == "urgent"


def milestone_id_for(lead_days: int) -> str:
    word = _NUMBER_WORDS.get(lead_days)
    if word is None:
        return f"{lead_days}_DAYS"
    if lead_days == 1:
        return "ONE_DAY"
    return f"{word}_DAYS"


def build_milestones(lead_days: tuple[int, ...] | list[int] = DEFAULT_MILESTONE_DAYS) -> tuple[Milestone, ...]:
    """Build milestones ordered longest lead first.

    The shortest lead time gets the urgent tone whenever more than one
    milestone is configured.
    """
    values = list(lead_days)
    if not values:
        raise ValueError("at least one milestone lead time is required")
    if any(value <= 0 for value in values):
        raise ValueError("milestone lead times must be positive")
    if len(set(values)) != len(values):
        raise ValueError("milestone lead times must be unique")
    ordered = sorted(values, reverse=True)
    shortest = ordered[-1]
    return tuple(
        Milestone(
            milestone_id=milestone_id_for(value),
            lead_days=value,
            tone="urgent" if len(ordered) > 1 and value == shortest else "normal",
        )
        for value in ordered
    )


@dataclass(frozen=True)
class DeliveryRecord:
    policy_id: str
    milestone_id: str
    recipient: str
    body: str
    status: DeliveryStatus
    policy_number: str = ""
    provider_message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    created_at: datetime = field(default_factory=_now_utc)

    @property
    def key(self) -> tuple[str, str]:
        return (self.policy_id, self.milestone_id)


@dataclass(frozen=True)
class DispatchResult:
    policy_id: str
    status: DispatchResultStatus
    reason: str
    error_message: str | None = None


@dataclass
class DispatchOutcome:
    milestone_id: str
    target_date: date | None = None
    total: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    results: list[DispatchResult] = field(default_factory=list)

    def add(self, result: DispatchResult) -> None:
        self.results.append(result)
        if result.status == "sent":
            self.sent += 1
        elif result.status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1


@dataclass(frozen=True)
class MilestoneError:
    milestone_id: str
    message: str


@dataclass
class RenewalRunReport:
    today: date
    outcomes: list[DispatchOutcome] = field(default_factory=list)
    errors: list[MilestoneError] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return sum(value.sent for value in self.outcomes)

    @property
    def skipped_count(self) -> int:
        return sum(value.skipped for value in self.outcomes)

    @property
    def failed_count(self) -> int:
        return sum(value.failed for value in self.outcomes)

    def outcome_for(self, milestone_id: str) -> DispatchOutcome | None:
        return next((value for value in self.outcomes if value.milestone_id == milestone_id), None)


class ReminderRunRequest(BaseModel):
    today: date | None = None


class DispatchResultItem(BaseModel):
    policy_id: str
    status: DispatchResultStatus
    reason: str
    error_message: str | None = None


class MilestoneOutcomeItem(BaseModel):
    milestone_id: str
    target_date: date | None = None
    total: int
    sent: int
    skipped: int
    failed: int
    results: list[DispatchResultItem] = Field(default_factory=list)


class MilestoneErrorItem(BaseModel):
    milestone_id: str
    message: str


class ReminderRunResponse(BaseModel):
    today: date
    sent_count: int
    skipped_count: int
    failed_count: int
    outcomes: list[MilestoneOutcomeItem]
    errors: list[MilestoneErrorItem] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: RenewalRunReport) -> ReminderRunResponse:
        return cls(
            today=report.today,
            sent_count=report.sent_count,
            skipped_count=report.skipped_count,
            failed_count=report.failed_count,
            outcomes=[
                MilestoneOutcomeItem(
                    milestone_id=outcome.milestone_id,
                    target_date=outcome.target_date,
                    total=outcome.total,
                    sent=outcome.sent,
                    skipped=outcome.skipped,
                    failed=outcome.failed,
                    results=[
                        DispatchResultItem(
                            policy_id=result.policy_id,
                            status=result.status,
                            reason=result.reason,
                            error_message=result.error_message,
                        )
                        for result in outcome.results
                    ],
                )
                for outcome in report.outcomes
            ],
            errors=[
                MilestoneErrorItem(milestone_id=error.milestone_id, message=error.message)
                for error in report.errors
            ],
        )


class DeliveryRecordItem(BaseModel):
    policy_id: str
    policy_number: str
    milestone_id: str
    recipient_masked: str
    body: str
    status: DeliveryStatus
    provider_message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    created_at: datetime


class DeliveryListResponse(BaseModel):
    items: list[DeliveryRecordItem]


class MilestoneItem(BaseModel):
    milestone_id: str
    lead_days: int
    tone: MilestoneTone


class MilestoneListResponse(BaseModel):
    schedule_time: str
    timezone: str | None = None
    items: list[MilestoneItem]
