from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from renewal_reminders.models import PolicySnapshot
from renewal_reminders.policies import (
    ClientRow,
    InMemoryPolicyDirectory,
    PolicyDirectoryBase,
    PolicyRow,
    SqlAlchemyPolicyDirectory,
    create_policy_directory,
)


def _seed(database_url: str) -> None:
    engine = create_engine(database_url, future=True)
    PolicyDirectoryBase.metadata.create_all(engine)
    with Session(engine) as session:
        with session.begin():
            asha = ClientRow(full_name="Asha Rao", phone_number="+919876543210", email="asha@example.com")
            ravi = ClientRow(full_name="Ravi Menon", phone_number="+919812345678")
            session.add_all([asha, ravi])
            session.flush()
            session.add_all(
                [
                    PolicyRow(
                        policy_number="HLT-2025-0100",
                        policy_type="Health",
                        start_date=date(2024, 6, 10),
                        expiry_date=date(2025, 6, 10),
                        premium=Decimal("12500.00"),
                        premium_frequency="YEARLY",
                        status="ACTIVE",
                        client_id=asha.id,
                    ),
                    PolicyRow(
                        policy_number="MTR-2025-0101",
                        policy_type="Motor",
                        expiry_date=date(2025, 6, 10),
                        premium=Decimal("8400.50"),
                        status="LAPSED",
                        client_id=ravi.id,
                    ),
                    PolicyRow(
                        policy_number="LIFE-2025-0102",
                        policy_type="Life",
                        expiry_date=date(2025, 6, 11),
                        premium=None,
                        status="ACTIVE",
                        client_id=ravi.id,
                    ),
                ]
            )
    engine.dispose()


def test_sql_directory_returns_active_policies_on_date(tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'policies.db'}"
    _seed(url)
    directory = SqlAlchemyPolicyDirectory(url)

    due = directory.find_active_policies_expiring_on(date(2025, 6, 10))

    assert len(due) == 1
    policy = due[0]
    assert policy.policy_id == "1"
    assert policy.policy_number == "HLT-2025-0100"
    assert policy.policy_type == "Health"
    assert policy.expiry_date == date(2025, 6, 10)
    assert policy.premium == Decimal("12500.00")
    assert policy.client_name == "Asha Rao"
    assert policy.client_phone == "+919876543210"
    assert policy.is_active is True


def test_sql_directory_handles_missing_premium_and_empty_days(tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'policies.db'}"
    _seed(url)
    directory = SqlAlchemyPolicyDirectory(url)

    (life,) = directory.find_active_policies_expiring_on(date(2025, 6, 11))
    assert life.premium is None
    assert life.client_name == "Ravi Menon"
    assert directory.find_active_policies_expiring_on(date(2025, 6, 12)) == []


def test_in_memory_directory_filters_status_and_date() -> None:
    directory = InMemoryPolicyDirectory(
        [
            PolicySnapshot(
                policy_id="P1",
                policy_number="HLT-1",
                policy_type="Health",
                expiry_date=date(2025, 6, 10),
                premium=Decimal("100"),
                client_name="A",
                client_phone="+911",
            ),
            PolicySnapshot(
                policy_id="P2",
                policy_number="HLT-2",
                policy_type="Health",
                expiry_date=date(2025, 6, 10),
                premium=Decimal("100"),
                client_name="B",
                client_phone="+912",
                status="CANCELLED",
            ),
        ]
    )

    assert [policy.policy_id for policy in directory.find_active_policies_expiring_on(date(2025, 6, 10))] == ["P1"]
    assert directory.find_active_policies_expiring_on(date(2025, 6, 9)) == []

    directory.reset()
    assert directory.find_active_policies_expiring_on(date(2025, 6, 10)) == []


def test_create_policy_directory_backends(tmp_path: Path) -> None:
    assert isinstance(create_policy_directory(backend="inmemory", database_url=""), InMemoryPolicyDirectory)
    assert isinstance(
        create_policy_directory(backend="sql", database_url=f"sqlite:///{tmp_path / 'p.db'}"),
        SqlAlchemyPolicyDirectory,
    )
    with pytest.raises(RuntimeError, match="DATABASE_URL is required"):
        create_policy_directory(backend="postgres", database_url="")
    with pytest.raises(RuntimeError, match="unsupported POLICY_DIRECTORY_BACKEND"):
        create_policy_directory(backend="csv", database_url="")
