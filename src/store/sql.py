"""SqlStore — SQLAlchemy Core implementation of the Store interface.

Works against any SQLAlchemy URL (PostgreSQL in production, SQLite for local
runs and tests). SQLAlchemy calls are blocking, so each operation runs in a
worker thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import datetime
from typing import Any

import structlog
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.engine import Engine, RowMapping
from sqlalchemy.pool import StaticPool

from src.core.types import (
    Alert,
    AlertStatus,
    BackupOperation,
    CheckResult,
    HealthSnapshot,
    RecoveryEvent,
    RecoveryProcedure,
)
from src.store.base import Store
from src.store.exceptions import AlertNotFoundError

logger = structlog.get_logger(__name__)

metadata = MetaData()

alerts_table = Table(
    "backup_monitoring_alerts",
    metadata,
    Column("alert_id", String(36), primary_key=True),
    Column("level", String(20), nullable=False, index=True),
    Column("type", String(50), nullable=False),
    Column("title", String(255), nullable=False),
    Column("data", JSON, nullable=False, default=dict),
    Column("status", String(20), nullable=False, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("processed_at", DateTime(timezone=True)),
    Column("escalated_at", DateTime(timezone=True)),
    Column("escalation_count", Integer, nullable=False, default=0),
    Column("resolved_at", DateTime(timezone=True)),
)

health_table = Table(
    "backup_health_data",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("timestamp", DateTime(timezone=True), nullable=False, index=True),
    Column("checks", JSON, nullable=False, default=dict),
    Column("overall_status", String(20), nullable=False),
    Column("alert_count", Integer, nullable=False, default=0),
)

events_table = Table(
    "disaster_recovery_events",
    metadata,
    Column("event_id", String(36), primary_key=True),
    Column("event_type", String(50), nullable=False, index=True),
    Column("status", String(20), nullable=False),
    Column("message", Text, nullable=False, default=""),
    Column("data", JSON, nullable=False, default=dict),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

procedures_table = Table(
    "recovery_procedures",
    metadata,
    Column("procedure_name", String(100), primary_key=True),
    Column("procedure_type", String(50), nullable=False),
    Column("estimated_duration_minutes", Integer, nullable=False, default=0),
    Column("dependencies", JSON, nullable=False, default=list),
    Column("is_critical", Boolean, nullable=False, default=False),
    Column("instructions", Text, nullable=False, default=""),
)

operations_table = Table(
    "backup_operations",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("backup_type", String(50), nullable=False, index=True),
    Column("status", String(20), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
    Column("size_bytes", BigInteger),
    Column("duration_seconds", Float),
    Column("verification_status", String(20), nullable=False),
    Column("backup_path", Text, nullable=False, default=""),
    Column("error_message", Text, nullable=False, default=""),
)


def _aware(value: datetime.datetime | None) -> datetime.datetime | None:
    # SQLite drops tzinfo; everything is written as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value


def create_store_engine(url: str, echo: bool = False) -> Engine:
    """Build an engine, sharing one connection for in-memory SQLite."""
    kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


class SqlStore(Store):
    """Persists every table through a SQLAlchemy engine.

    Usage::

        store = SqlStore("postgresql+psycopg://user:pw@host/db")
        await store.initialize()
        await store.insert_alert(alert)
    """

    def __init__(self, url: str, echo: bool = False, engine: Engine | None = None) -> None:
        self._engine = engine or create_store_engine(url, echo=echo)

    @property
    def engine(self) -> Engine:
        return self._engine

    # ── Lifecycle ───────────────────────────────────────────────

    async def initialize(self) -> None:
        await asyncio.to_thread(metadata.create_all, self._engine)
        logger.info("store_initialized", dialect=self._engine.dialect.name)

    async def ping(self) -> None:
        def _ping() -> None:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))

        await asyncio.to_thread(_ping)

    async def close(self) -> None:
        await asyncio.to_thread(self._engine.dispose)

    def _execute(self, stmt: Any) -> None:
        with self._engine.begin() as conn:
            conn.execute(stmt)

    def _fetch(self, stmt: Any) -> list[RowMapping]:
        with self._engine.connect() as conn:
            return list(conn.execute(stmt).mappings())

    # ── Health snapshots ────────────────────────────────────────

    async def append_health_snapshot(self, snapshot: HealthSnapshot) -> None:
        dumped = snapshot.model_dump(mode="json")
        stmt = insert(health_table).values(
            id=snapshot.id,
            timestamp=snapshot.timestamp,
            checks=dumped["checks"],
            overall_status=snapshot.overall_status.value,
            alert_count=snapshot.alert_count,
        )
        await asyncio.to_thread(self._execute, stmt)

    async def list_health_snapshots(
        self,
        since: datetime.datetime | None = None,
        limit: int | None = None,
    ) -> list[HealthSnapshot]:
        stmt = select(health_table).order_by(health_table.c.timestamp.desc())
        if since is not None:
            stmt = stmt.where(health_table.c.timestamp >= since)
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = await asyncio.to_thread(self._fetch, stmt)
        return [_row_to_snapshot(r) for r in reversed(rows)]

    # ── Alerts ──────────────────────────────────────────────────

    async def insert_alert(self, alert: Alert) -> None:
        stmt = insert(alerts_table).values(**_alert_to_row(alert))
        await asyncio.to_thread(self._execute, stmt)

    async def update_alert(self, alert: Alert) -> None:
        values = _alert_to_row(alert)
        values.pop("alert_id")
        stmt = (
            update(alerts_table)
            .where(alerts_table.c.alert_id == alert.id)
            .values(**values)
        )

        def _update() -> int:
            with self._engine.begin() as conn:
                return conn.execute(stmt).rowcount

        if await asyncio.to_thread(_update) == 0:
            raise AlertNotFoundError(alert.id)

    async def get_alert(self, alert_id: str) -> Alert | None:
        stmt = select(alerts_table).where(alerts_table.c.alert_id == alert_id)
        rows = await asyncio.to_thread(self._fetch, stmt)
        return _row_to_alert(rows[0]) if rows else None

    async def list_alerts(
        self,
        statuses: list[AlertStatus] | None = None,
        unprocessed_only: bool = False,
        since: datetime.datetime | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        stmt = select(alerts_table).order_by(alerts_table.c.created_at.asc())
        if statuses is not None:
            stmt = stmt.where(alerts_table.c.status.in_([s.value for s in statuses]))
        if unprocessed_only:
            stmt = stmt.where(alerts_table.c.processed_at.is_(None))
        if since is not None:
            stmt = stmt.where(alerts_table.c.created_at >= since)
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = await asyncio.to_thread(self._fetch, stmt)
        return [_row_to_alert(r) for r in rows]

    # ── Recovery ────────────────────────────────────────────────

    async def append_recovery_event(self, event: RecoveryEvent) -> None:
        dumped = event.model_dump(mode="json")
        stmt = insert(events_table).values(
            event_id=event.event_id,
            event_type=event.event_type,
            status=event.status,
            message=event.message,
            data=dumped["data"],
            created_at=event.created_at,
        )
        await asyncio.to_thread(self._execute, stmt)

    async def list_recovery_events(
        self, event_type: str | None = None,
    ) -> list[RecoveryEvent]:
        stmt = select(events_table).order_by(events_table.c.created_at.asc())
        if event_type is not None:
            stmt = stmt.where(events_table.c.event_type == event_type)
        rows = await asyncio.to_thread(self._fetch, stmt)
        return [
            RecoveryEvent(
                event_id=r["event_id"],
                event_type=r["event_type"],
                status=r["status"],
                message=r["message"],
                data=r["data"] or {},
                created_at=_aware(r["created_at"]),
            )
            for r in rows
        ]

    async def save_recovery_procedures(
        self, procedures: list[RecoveryProcedure],
    ) -> None:
        def _replace() -> None:
            with self._engine.begin() as conn:
                conn.execute(delete(procedures_table))
                if procedures:
                    conn.execute(
                        insert(procedures_table),
                        [p.model_dump() for p in procedures],
                    )

        await asyncio.to_thread(_replace)

    async def list_recovery_procedures(self) -> list[RecoveryProcedure]:
        rows = await asyncio.to_thread(self._fetch, select(procedures_table))
        return [RecoveryProcedure.model_validate(dict(r)) for r in rows]

    # ── Backup operations ───────────────────────────────────────

    async def record_backup_operation(self, operation: BackupOperation) -> None:
        stmt = insert(operations_table).values(**operation.model_dump(mode="python"))
        await asyncio.to_thread(self._execute, stmt)

    async def list_backup_operations(
        self, since: datetime.datetime | None = None,
    ) -> list[BackupOperation]:
        stmt = select(operations_table).order_by(operations_table.c.created_at.desc())
        if since is not None:
            stmt = stmt.where(operations_table.c.created_at >= since)
        rows = await asyncio.to_thread(self._fetch, stmt)
        operations = []
        for r in rows:
            row = dict(r)
            row["created_at"] = _aware(row["created_at"])
            operations.append(BackupOperation.model_validate(row))
        return operations


# ── Row mapping ─────────────────────────────────────────────────


def _alert_to_row(alert: Alert) -> dict[str, Any]:
    return {
        "alert_id": alert.id,
        "level": alert.level.value,
        "type": alert.type,
        "title": alert.title,
        "data": alert.model_dump(mode="json")["data"],
        "status": alert.status.value,
        "created_at": alert.created_at,
        "processed_at": alert.processed_at,
        "escalated_at": alert.escalated_at,
        "escalation_count": alert.escalation_count,
        "resolved_at": alert.resolved_at,
    }


def _row_to_alert(row: RowMapping) -> Alert:
    return Alert(
        id=row["alert_id"],
        level=row["level"],
        type=row["type"],
        title=row["title"],
        data=row["data"] or {},
        status=row["status"],
        created_at=_aware(row["created_at"]),
        processed_at=_aware(row["processed_at"]),
        escalated_at=_aware(row["escalated_at"]),
        escalation_count=row["escalation_count"],
        resolved_at=_aware(row["resolved_at"]),
    )


def _row_to_snapshot(row: RowMapping) -> HealthSnapshot:
    checks = {
        name: CheckResult.model_validate(result)
        for name, result in (row["checks"] or {}).items()
    }
    return HealthSnapshot(
        id=row["id"],
        timestamp=_aware(row["timestamp"]),
        checks=checks,
        alert_count=row["alert_count"],
    )
