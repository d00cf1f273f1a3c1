"""NotificationDispatcher — fans an alert out to every enabled channel."""

from __future__ import annotations

import asyncio

import structlog

from src.core.types import Alert, DispatchSummary, NotificationResult
from src.monitor.channels import NotificationChannel
from src.monitor.formatters import format_alert
from src.monitor.types import AlertMessage

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Sends one alert to all applicable channels concurrently.

    - One send task per channel that accepts the alert's level
      (SMS only takes critical alerts).
    - Every task runs under its own timeout and is awaited to completion;
      one channel failing never stops the others.
    - Failures are logged and counted, never retried here and never raised.
      Retries happen only through the escalation cycle.
    """

    def __init__(
        self,
        channels: list[NotificationChannel] | None = None,
        channel_timeout_secs: float = 10.0,
    ) -> None:
        self._channels: list[NotificationChannel] = channels or []
        self._timeout = channel_timeout_secs

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    async def dispatch(self, alert: Alert, escalation: bool = False) -> DispatchSummary:
        """Notify every applicable channel and return aggregate counts."""
        msg = format_alert(alert, escalation=escalation)
        return await self.send(msg)

    async def send(self, msg: AlertMessage) -> DispatchSummary:
        """Fan out an already formatted message."""
        targets = [ch for ch in self._channels if ch.accepts(msg)]
        outcomes = await asyncio.gather(
            *(self._send_one(ch, msg) for ch in targets),
            return_exceptions=True,
        )

        results: list[NotificationResult] = []
        for ch, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException):
                error = str(outcome) or type(outcome).__name__
                logger.warning(
                    "notification_channel_failed",
                    channel=ch.name,
                    alert_id=msg.alert_id,
                    error=error,
                )
                results.append(NotificationResult(channel=ch.name, success=False, error=error))
            else:
                results.append(NotificationResult(channel=ch.name, success=True))

        successful = sum(1 for r in results if r.success)
        summary = DispatchSummary(
            successful=successful,
            failed=len(results) - successful,
            total=len(results),
            results=results,
        )
        logger.info(
            "notifications_sent",
            alert_id=msg.alert_id,
            level=msg.level.value,
            escalation=msg.escalation,
            successful=summary.successful,
            failed=summary.failed,
            total=summary.total,
        )
        return summary

    async def _send_one(self, ch: NotificationChannel, msg: AlertMessage) -> None:
        try:
            await asyncio.wait_for(ch.send(msg), timeout=self._timeout)
        except TimeoutError as exc:
            raise TimeoutError(f"timed out after {self._timeout}s") from exc

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        for ch in self._channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=ch.name)
