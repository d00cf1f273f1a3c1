"""Recovery point / recovery time objective compliance.

Objectives are reported, never enforced: a breach shows up in status
reports, it does not stop anything.
"""

from __future__ import annotations

import datetime

from pydantic import BaseModel

from src.core.config import RecoveryConfig
from src.core.types import BackupStatus, RecoveryStatus, utcnow
from src.store.base import Store

FULL_RECOVERY_EVENT = "full_recovery"
FULL_SYSTEM_RTO = "full_system"


class ObjectiveStatus(BaseModel):
    """Compliance of one resource against one objective.

    ``compliant`` is None when there is nothing to measure yet.
    """

    objective: str  # "rpo" | "rto"
    resource: str
    target_minutes: float
    actual_minutes: float | None = None
    compliant: bool | None = None
    detail: str = ""


async def evaluate_objectives(
    store: Store,
    config: RecoveryConfig | None = None,
    expected_types: list[str] | None = None,
    now: datetime.datetime | None = None,
) -> list[ObjectiveStatus]:
    """RPO per configured resource, plus RTO of the last finished recovery.

    RPO actual is the age of the newest completed backup of that type. A
    resource with no backups is non-compliant if it is an expected backup
    type, and unmeasured otherwise.
    """
    config = config or RecoveryConfig()
    now = now or utcnow()
    expected = set(expected_types or [])
    results: list[ObjectiveStatus] = []

    operations = await store.list_backup_operations()
    latest: dict[str, datetime.datetime] = {}
    for op in operations:
        if op.status != BackupStatus.COMPLETED:
            continue
        if op.backup_type not in latest or op.created_at > latest[op.backup_type]:
            latest[op.backup_type] = op.created_at

    for resource, target in config.rpo_minutes.items():
        created = latest.get(resource)
        if created is None:
            results.append(ObjectiveStatus(
                objective="rpo",
                resource=resource,
                target_minutes=target,
                compliant=False if resource in expected else None,
                detail="No completed backup recorded",
            ))
            continue
        age = (now - created).total_seconds() / 60.0
        results.append(ObjectiveStatus(
            objective="rpo",
            resource=resource,
            target_minutes=target,
            actual_minutes=round(age, 1),
            compliant=age <= target,
            detail=f"Newest backup {age:.0f} minutes old",
        ))

    results.append(await _full_system_rto(store, config))
    return results


async def _full_system_rto(store: Store, config: RecoveryConfig) -> ObjectiveStatus:
    target = config.rto_minutes.get(FULL_SYSTEM_RTO, 0.0)
    events = await store.list_recovery_events(event_type=FULL_RECOVERY_EVENT)
    finished = [
        e for e in events
        if e.status in (RecoveryStatus.COMPLETED.value, RecoveryStatus.FAILED.value)
    ]
    if not finished:
        return ObjectiveStatus(
            objective="rto",
            resource=FULL_SYSTEM_RTO,
            target_minutes=target,
            detail="No recovery has run",
        )

    last = max(finished, key=lambda e: e.created_at)
    duration = last.data.get("duration_minutes")
    if last.status == RecoveryStatus.FAILED.value:
        return ObjectiveStatus(
            objective="rto",
            resource=FULL_SYSTEM_RTO,
            target_minutes=target,
            actual_minutes=duration,
            compliant=False,
            detail=f"Last recovery failed: {last.data.get('error', '')}",
        )
    return ObjectiveStatus(
        objective="rto",
        resource=FULL_SYSTEM_RTO,
        target_minutes=target,
        actual_minutes=duration,
        compliant=duration is not None and duration <= target,
        detail=f"Last recovery took {duration} minutes",
    )
