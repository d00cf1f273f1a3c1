"""Channel-facing types for the notification subsystem."""

from __future__ import annotations

import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.core.types import AlertLevel, utcnow


class AlertMessage(BaseModel):
    """Normalised alert ready for delivery to channels."""

    alert_id: str
    level: AlertLevel
    alert_type: str
    title: str
    body: str = ""
    fields: dict[str, str] = Field(default_factory=dict)
    timestamp: datetime.datetime = Field(default_factory=utcnow)
    escalation: bool = False
    escalation_count: int = 0
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def subject(self) -> str:
        prefix = "ESCALATED " if self.escalation else ""
        return f"[Backup Alert] {prefix}{self.level.value.upper()}: {self.title}"
