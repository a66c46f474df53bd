from __future__ import annotations

from datetime import date
from decimal import Decimal
from threading import Lock
from typing import Protocol

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from .models import ACTIVE_POLICY_STATUS, PolicySnapshot


class PolicyDirectory(Protocol):
    def find_active_policies_expiring_on(self, day: date) -> list[PolicySnapshot]: ...


class InMemoryPolicyDirectory:
    def __init__(self, policies: list[PolicySnapshot] | None = None) -> None:
        self._lock = Lock()
        self._policies: dict[str, PolicySnapshot] = {}
        for policy in policies or []:
            self.upsert(policy)

    def reset(self) -> None:
        with self._lock:
            self._policies.clear()

    def upsert(self, policy: PolicySnapshot) -> None:
        with self._lock:
            self._policies[policy.policy_id] = policy

    def find_active_policies_expiring_on(self, day: date) -> list[PolicySnapshot]:
        with self._lock:
            return [
                policy
                for policy in self._policies.values()
                if policy.is_active and policy.expiry_date == day
            ]


class PolicyDirectoryBase(DeclarativeBase):
    pass


# Owned and written by the agency's policy management service; read-only here.
class ClientRow(PolicyDirectoryBase):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    email: Mapped[str | None] = mapped_column(String(200), nullable=True)


class PolicyRow(PolicyDirectoryBase):
    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    policy_type: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    premium: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    premium_frequency: Mapped[str] = mapped_column(String(20), nullable=False, default="YEARLY")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ACTIVE_POLICY_STATUS)
    client_id: Mapped[int] = mapped_column(Integer, ForeignKey("clients.id"), nullable=False, index=True)


class SqlAlchemyPolicyDirectory:
    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise RuntimeError("DATABASE_URL is required for POLICY_DIRECTORY_BACKEND=postgres")
        self._engine = create_engine(database_url, future=True, pool_pre_ping=True)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)
        if database_url.startswith("sqlite"):
            PolicyDirectoryBase.metadata.create_all(self._engine)

    def _session(self):
        return self._session_factory()

    def find_active_policies_expiring_on(self, day: date) -> list[PolicySnapshot]:
        with self._session() as session:
            rows = session.execute(
                select(PolicyRow, ClientRow)
                .join(ClientRow, PolicyRow.client_id == ClientRow.id)
                .where(PolicyRow.expiry_date == day)
                .where(PolicyRow.status == ACTIVE_POLICY_STATUS)
                .order_by(PolicyRow.id.asc())
            ).all()
            return [
                PolicySnapshot(
                    policy_id=str(policy.id),
                    policy_number=policy.policy_number,
                    policy_type=policy.policy_type,
                    expiry_date=policy.expiry_date,
                    premium=policy.premium,
                    premium_frequency=policy.premium_frequency,
                    client_name=client.full_name,
                    client_phone=client.phone_number,
                    status=policy.status,
                )
                for policy, client in rows
            ]


def create_policy_directory(*, backend: str, database_url: str) -> PolicyDirectory:
    normalized = backend.strip().lower()
    if normalized in {"postgres", "sql"}:
        return SqlAlchemyPolicyDirectory(database_url)
    if normalized == "inmemory":
        return InMemoryPolicyDirectory()
    raise RuntimeError(f"unsupported POLICY_DIRECTORY_BACKEND: {backend}")
