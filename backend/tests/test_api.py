from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from fastapi.testclient import TestClient

from renewal_reminders import api as api_module
from renewal_reminders.main import create_app
from renewal_reminders.models import PolicySnapshot
from renewal_reminders.notifier import LoggingMessageSender, SendResult
from renewal_reminders.policies import InMemoryPolicyDirectory

RUN_URL = "/api/v1/renewals/reminders/run"
DELIVERIES_URL = "/api/v1/renewals/reminders/deliveries"


class _FailingSender:
    def send(self, address: str, body: str) -> SendResult:
        return SendResult(
            status="failed",
            attempted_at=datetime.now(timezone.utc),
            error_code="http_500",
            error_message="HTTP 500: gateway error (recipient: ***0200)",
        )


def _policy(policy_id: str, expiry: date, phone: str) -> PolicySnapshot:
    return PolicySnapshot(
        policy_id=policy_id,
        policy_number=f"NUM-{policy_id}",
        policy_type="Health",
        expiry_date=expiry,
        premium=Decimal("12500.00"),
        client_name=f"Client {policy_id}",
        client_phone=phone,
    )


def _client(*policies: PolicySnapshot, sender=None) -> TestClient:
    api_module.reset_runtime_state_for_tests()
    api_module.policy_directory = InMemoryPolicyDirectory(list(policies))
    api_module.message_sender = sender or LoggingMessageSender()
    return TestClient(create_app())


def test_run_endpoint_sends_due_reminders_once() -> None:
    client = _client(_policy("POL-100", date(2025, 6, 10), "+919876543210"))

    first = client.post(RUN_URL, json={"today": "2025-06-03"})
    assert first.status_code == 200
    body = first.json()
    assert body["today"] == "2025-06-03"
    assert (body["sent_count"], body["skipped_count"], body["failed_count"]) == (1, 0, 0)
    seven, three = body["outcomes"]
    assert seven["milestone_id"] == "SEVEN_DAYS"
    assert seven["target_date"] == "2025-06-10"
    assert seven["results"] == [
        {"policy_id": "POL-100", "status": "sent", "reason": "sent", "error_message": None}
    ]
    assert three["milestone_id"] == "THREE_DAYS"
    assert three["total"] == 0
    assert body["errors"] == []

    rerun = client.post(RUN_URL, json={"today": "2025-06-03"})
    assert rerun.status_code == 200
    assert (rerun.json()["sent_count"], rerun.json()["skipped_count"]) == (0, 1)


def test_run_endpoint_without_body_uses_current_date() -> None:
    client = _client()

    response = client.post(RUN_URL)

    assert response.status_code == 200
    assert response.json()["sent_count"] == 0
    assert len(response.json()["outcomes"]) == 2


def test_deliveries_endpoint_masks_recipients_and_filters() -> None:
    client = _client(
        _policy("POL-100", date(2025, 6, 10), "+919876543210"),
        _policy("POL-200", date(2025, 6, 6), "+910000000200"),
    )
    client.post(RUN_URL, json={"today": "2025-06-03"})

    listing = client.get(DELIVERIES_URL)
    assert listing.status_code == 200
    items = listing.json()["items"]
    assert {item["policy_id"] for item in items} == {"POL-100", "POL-200"}
    assert {item["recipient_masked"] for item in items} == {"***3210", "***0200"}
    assert all("+91" not in item["recipient_masked"] for item in items)
    assert all(item["status"] == "SENT" for item in items)

    only_three = client.get(DELIVERIES_URL, params={"policy_id": "POL-200"})
    (item,) = only_three.json()["items"]
    assert item["milestone_id"] == "THREE_DAYS"
    assert item["body"].startswith("URGENT:")

    failed = client.get(DELIVERIES_URL, params={"status": "FAILED"})
    assert failed.json()["items"] == []

    limited = client.get(DELIVERIES_URL, params={"limit": 1})
    assert len(limited.json()["items"]) == 1


def test_failed_deliveries_are_listed_with_error_details() -> None:
    client = _client(_policy("POL-200", date(2025, 6, 6), "+910000000200"), sender=_FailingSender())

    run = client.post(RUN_URL, json={"today": "2025-06-03"})
    assert run.json()["failed_count"] == 1
    assert run.json()["outcomes"][1]["results"][0]["reason"] == "http_500"

    failed = client.get(DELIVERIES_URL, params={"status": "FAILED"})
    (item,) = failed.json()["items"]
    assert item["error_code"] == "http_500"
    assert item["recipient_masked"] == "***0200"


def test_deliveries_endpoint_validates_filters() -> None:
    client = _client()

    assert client.get(DELIVERIES_URL, params={"status": "DELIVERED"}).status_code == 422
    assert client.get(DELIVERIES_URL, params={"limit": 0}).status_code == 422
    assert client.post(RUN_URL, json={"today": "not-a-date"}).status_code == 422


def test_milestones_endpoint_describes_schedule() -> None:
    client = _client()

    response = client.get("/api/v1/renewals/reminders/milestones")

    assert response.status_code == 200
    body = response.json()
    assert body["schedule_time"] == "09:00"
    assert body["items"] == [
        {"milestone_id": "SEVEN_DAYS", "lead_days": 7, "tone": "normal"},
        {"milestone_id": "THREE_DAYS", "lead_days": 3, "tone": "urgent"},
    ]
