"""Pure functions that convert alerts into channel payloads."""

from __future__ import annotations

import json
from html import escape as html_escape
from typing import Any

from src.core.types import Alert, AlertLevel
from src.monitor.types import AlertMessage

# ── Level mappings ──────────────────────────────────────────────

_LEVEL_COLORS: dict[AlertLevel, str] = {
    AlertLevel.INFO: "#2196F3",
    AlertLevel.WARNING: "#FF9800",
    AlertLevel.ERROR: "#F44336",
    AlertLevel.CRITICAL: "#9C27B0",
}

_LEVEL_EMOJI: dict[AlertLevel, str] = {
    AlertLevel.INFO: ":information_source:",
    AlertLevel.WARNING: ":warning:",
    AlertLevel.ERROR: ":x:",
    AlertLevel.CRITICAL: ":rotating_light:",
}

_SMS_MAX_CHARS = 160


def level_color(level: AlertLevel) -> str:
    return _LEVEL_COLORS.get(level, "#9E9E9E")


def level_emoji(level: AlertLevel) -> str:
    return _LEVEL_EMOJI.get(level, ":grey_question:")


# ── Alert → AlertMessage ────────────────────────────────────────


def _field_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str, sort_keys=True)
    return str(value)


def format_alert(alert: Alert, escalation: bool = False) -> AlertMessage:
    """Convert a stored Alert into a channel-agnostic AlertMessage."""
    fields = {k: _field_value(v) for k, v in alert.data.items()}
    body = str(alert.data.get("detail") or alert.data.get("error") or "")
    return AlertMessage(
        alert_id=alert.id,
        level=alert.level,
        alert_type=alert.type,
        title=alert.title,
        body=body,
        fields=fields,
        timestamp=alert.created_at,
        escalation=escalation,
        escalation_count=alert.escalation_count,
        raw=alert.model_dump(mode="json")["data"],
    )


# ── Channel payloads ────────────────────────────────────────────


def render_email_html(msg: AlertMessage) -> str:
    """HTML body for email delivery. All alert content is escaped."""
    rows = "".join(
        f"<tr><td><strong>{html_escape(k)}</strong></td>"
        f"<td>{html_escape(v)}</td></tr>"
        for k, v in msg.fields.items()
    )
    escalation = (
        f"<p><strong>Escalation #{msg.escalation_count}</strong>: "
        "this alert is still unresolved.</p>"
        if msg.escalation
        else ""
    )
    return (
        "<html><body style=\"font-family: Arial, sans-serif;\">"
        f"<div style=\"background: {level_color(msg.level)}; color: white; padding: 16px;\">"
        f"<h2>{html_escape(msg.level.value.upper())}: {html_escape(msg.title)}</h2>"
        "</div>"
        f"{escalation}"
        f"<p><strong>Alert ID:</strong> {html_escape(msg.alert_id)}</p>"
        f"<p><strong>Type:</strong> {html_escape(msg.alert_type)}</p>"
        f"<p><strong>Timestamp:</strong> {msg.timestamp.isoformat()}</p>"
        f"<p>{html_escape(msg.body)}</p>"
        f"<table>{rows}</table>"
        "</body></html>"
    )


def build_chat_ops_payload(
    msg: AlertMessage, channel: str, username: str,
) -> dict[str, Any]:
    """Slack-compatible incoming-webhook payload."""
    title = f"{msg.level.value.upper()} Alert: {msg.title}"
    if msg.escalation:
        title = f"[ESCALATION {msg.escalation_count}] {title}"
    return {
        "channel": channel,
        "username": username,
        "icon_emoji": level_emoji(msg.level),
        "attachments": [
            {
                "color": level_color(msg.level),
                "title": title,
                "text": json.dumps(msg.raw, indent=2, default=str),
                "fields": [
                    {"title": k, "value": v, "short": True}
                    for k, v in msg.fields.items()
                ],
                "ts": int(msg.timestamp.timestamp()),
            }
        ],
    }


def build_webhook_payload(msg: AlertMessage) -> dict[str, Any]:
    return {
        "alert_id": msg.alert_id,
        "level": msg.level.value,
        "type": msg.alert_type,
        "title": msg.title,
        "body": msg.body,
        "data": msg.raw,
        "timestamp": msg.timestamp.isoformat(),
        "escalation": msg.escalation,
        "escalation_count": msg.escalation_count,
    }


def build_sms_text(msg: AlertMessage) -> str:
    text = f"{msg.level.value.upper()} BACKUP ALERT: {msg.title}"
    if msg.body:
        text = f"{text} - {msg.body}"
    if len(text) > _SMS_MAX_CHARS:
        text = text[: _SMS_MAX_CHARS - 3] + "..."
    return text
