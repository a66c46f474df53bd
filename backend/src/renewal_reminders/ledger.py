from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Protocol

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint, create_engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from .models import DeliveryRecord, DeliveryStatus


class LedgerConflictError(ValueError):
    """Raised when a delivery record already exists for a (policy, milestone) pair."""

    def __init__(self, policy_id: str, milestone_id: str) -> None:
        super().__init__(f"delivery already recorded for policy {policy_id} / {milestone_id}")
        self.policy_id = policy_id
        self.milestone_id = milestone_id


def _coerce_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DeliveryLedger(Protocol):
    def reset(self) -> None: ...

    def exists(self, policy_id: str, milestone_id: str) -> bool: ...

    def record(self, entry: DeliveryRecord) -> DeliveryRecord: ...

    def get(self, policy_id: str, milestone_id: str) -> DeliveryRecord | None: ...

    def list_records(
        self,
        *,
        policy_id: str | None = None,
        status: DeliveryStatus | None = None,
        limit: int | None = None,
    ) -> list[DeliveryRecord]: ...


class InMemoryDeliveryLedger:
    def __init__(self) -> None:
        self._lock = Lock()
        self._records: dict[tuple[str, str], DeliveryRecord] = {}

    def reset(self) -> None:
        with self._lock:
            self._records.clear()

    def exists(self, policy_id: str, milestone_id: str) -> bool:
        with self._lock:
            return (policy_id, milestone_id) in self._records

    def record(self, entry: DeliveryRecord) -> DeliveryRecord:
        with self._lock:
            if entry.key in self._records:
                raise LedgerConflictError(entry.policy_id, entry.milestone_id)
            self._records[entry.key] = entry
        return entry

    def get(self, policy_id: str, milestone_id: str) -> DeliveryRecord | None:
        with self._lock:
            return self._records.get((policy_id, milestone_id))

    def list_records(
        self,
        *,
        policy_id: str | None = None,
        status: DeliveryStatus | None = None,
        limit: int | None = None,
    ) -> list[DeliveryRecord]:
        with self._lock:
            rows = list(reversed(self._records.values()))
        if policy_id is not None:
            rows = [row for row in rows if row.policy_id == policy_id]
        if status is not None:
            rows = [row for row in rows if row.status == status]
        rows.sort(key=lambda value: value.created_at, reverse=True)
        return rows[:limit] if limit is not None else rows


class DeliveryLedgerBase(DeclarativeBase):
    pass


class _DeliveryRecordRow(DeliveryLedgerBase):
    __tablename__ = "renewal_delivery_records"
    __table_args__ = (
        UniqueConstraint("policy_id", "milestone_id", name="uq_renewal_delivery_policy_milestone"),
    )

    record_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    policy_number: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    milestone_id: Mapped[str] = mapped_column(String(32), nullable=False)
    recipient: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def _to_record(row: _DeliveryRecordRow) -> DeliveryRecord:
    return DeliveryRecord(
        policy_id=row.policy_id,
        milestone_id=row.milestone_id,
        recipient=row.recipient,
        body=row.body,
        status=row.status,  # type: ignore[arg-type]
        policy_number=row.policy_number,
        provider_message_id=row.provider_message_id,
        error_code=row.error_code,
        error_message=row.error_message,
        created_at=_coerce_utc(row.created_at),
    )


class SqlAlchemyDeliveryLedger:
    """Ledger backed by a table whose composite unique key is the duplicate guard."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise RuntimeError("DATABASE_URL is required for REMINDER_LEDGER_BACKEND=postgres")
        self._engine = create_engine(database_url, future=True, pool_pre_ping=True)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)
        if database_url.startswith("sqlite"):
            DeliveryLedgerBase.metadata.create_all(self._engine)

    def _session(self):
        return self._session_factory()

    def reset(self) -> None:
        with self._session() as session:
            with session.begin():
                session.query(_DeliveryRecordRow).delete()

    def exists(self, policy_id: str, milestone_id: str) -> bool:
        with self._session() as session:
            row_id = session.execute(
                select(_DeliveryRecordRow.record_id)
                .where(_DeliveryRecordRow.policy_id == policy_id)
                .where(_DeliveryRecordRow.milestone_id == milestone_id)
                .limit(1)
            ).scalar_one_or_none()
            return row_id is not None

    def record(self, entry: DeliveryRecord) -> DeliveryRecord:
        try:
            with self._session() as session:
                with session.begin():
                    session.add(
                        _DeliveryRecordRow(
                            policy_id=entry.policy_id,
                            policy_number=entry.policy_number,
                            milestone_id=entry.milestone_id,
                            recipient=entry.recipient,
                            body=entry.body,
                            status=entry.status,
                            provider_message_id=entry.provider_message_id,
                            error_code=entry.error_code,
                            error_message=entry.error_message,
                            created_at=_coerce_utc(entry.created_at),
                        )
                    )
        except IntegrityError as exc:
            # Only a row already holding the pair is a conflict; other constraint failures propagate.
            if self.exists(entry.policy_id, entry.milestone_id):
                raise LedgerConflictError(entry.policy_id, entry.milestone_id) from exc
            raise
        return entry

    def get(self, policy_id: str, milestone_id: str) -> DeliveryRecord | None:
        with self._session() as session:
            row = session.execute(
                select(_DeliveryRecordRow)
                .where(_DeliveryRecordRow.policy_id == policy_id)
                .where(_DeliveryRecordRow.milestone_id == milestone_id)
            ).scalar_one_or_none()
            if row is None:
                return None
            return _to_record(row)

    def list_records(
        self,
        *,
        policy_id: str | None = None,
        status: DeliveryStatus | None = None,
        limit: int | None = None,
    ) -> list[DeliveryRecord]:
        query = select(_DeliveryRecordRow).order_by(
            _DeliveryRecordRow.created_at.desc(),
            _DeliveryRecordRow.record_id.desc(),
        )
        if policy_id is not None:
            query = query.where(_DeliveryRecordRow.policy_id == policy_id)
        if status is not None:
            query = query.where(_DeliveryRecordRow.status == status)
        if limit is not None:
            query = query.limit(limit)
        with self._session() as session:
            return [_to_record(row) for row in session.execute(query).scalars()]


def create_delivery_ledger(*, backend: str, database_url: str) -> DeliveryLedger:
    normalized = backend.strip().lower()
    if normalized in {"postgres", "sql"}:
        return SqlAlchemyDeliveryLedger(database_url)
    if normalized == "inmemory":
        return InMemoryDeliveryLedger()
    raise RuntimeError(f"unsupported REMINDER_LEDGER_BACKEND: {backend}")
