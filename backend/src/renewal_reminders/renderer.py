from __future__ import annotations

from datetime import date

from .models import Milestone, PolicySnapshot

# Fixed English abbreviations so output never depends on the process locale.
_MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


def format_expiry_date(value: date) -> str:
    return f"{value.day:02d}-{_MONTH_ABBREVIATIONS[value.month - 1]}-{value.year:04d}"


def _days_phrase(lead_days: int) -> str:
    return "1 day" if lead_days == 1 else f"{lead_days} days"


def render_renewal_message(policy: PolicySnapshot, milestone: Milestone) -> str:
    """Render the reminder body for one policy under one milestone.

    Missing values are rendered as-is rather than rejected; trimming to the
    transport's length limit is the sender's job.
    """
    expiry = format_expiry_date(policy.expiry_date)
    premium = "N/A" if policy.premium is None else str(policy.premium)
    when = _days_phrase(milestone.lead_days)

    if milestone.is_urgent:
        return (
            f"URGENT: Dear {policy.client_name}, your {policy.policy_type} policy "
            f"({policy.policy_number}) expires in {when} on {expiry}! "
            f"Premium: ₹{premium}. Renew immediately to maintain continuous coverage. "
            "Call your agent today."
        )
    return (
        f"Dear {policy.client_name}, your {policy.policy_type} policy "
        f"({policy.policy_number}) is expiring in {when} on {expiry}. "
        f"Premium: ₹{premium}. Please renew soon to avoid coverage lapse. "
        "Contact your agent for assistance."
    )
