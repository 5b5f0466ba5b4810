"""Alert delivery for degraded vitals via Slack webhooks and SMTP email."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from datetime import datetime, timezone
from email.mime.text import MIMEText
from typing import Optional

import httpx
from pydantic import BaseModel

from webvitals.models.config import MonitorSettings
from webvitals.models.vitals import DegradationEvent, TrackedTarget

logger = logging.getLogger(__name__)

METRIC_DISPLAY_NAMES = {
    "lcp": "Largest Contentful Paint",
    "fcp": "First Contentful Paint",
    "cls": "Cumulative Layout Shift",
    "ttfb": "Time to First Byte",
    "inp": "Interaction to Next Paint",
    "performance": "Performance Score",
}

METRIC_UNITS = {
    "lcp": "s",
    "fcp": "s",
    "cls": "",
    "ttfb": "s",
    "inp": "ms",
    "performance": "/100",
}


def metric_display_name(metric: str) -> str:
    return METRIC_DISPLAY_NAMES.get(metric, metric.upper())


def format_event(event: DegradationEvent) -> str:
    """e.g. ``Largest Contentful Paint: 2.1s -> 4.5s (threshold: 4.0s)``"""
    unit = METRIC_UNITS.get(event.metric, "")
    return (
        f"{metric_display_name(event.metric)}: "
        f"{event.previous_value:g}{unit} -> {event.new_value:g}{unit} "
        f"(threshold: {event.threshold_poor:g}{unit})"
    )


class ChannelResult(BaseModel):
    success: bool
    error: Optional[str] = None


class AlertOutcome(BaseModel):
    slack: Optional[ChannelResult] = None
    email: Optional[ChannelResult] = None
    message: str = ""


class AlertDispatcher:
    """Sends degradation alerts through whichever channels are configured."""

    def __init__(
        self,
        settings: MonitorSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._transport = transport

    async def send(self, target: TrackedTarget, events: list[DegradationEvent]) -> AlertOutcome:
        if not self.settings.alerts_enabled:
            return AlertOutcome(message="Alerts disabled")
        if not events:
            return AlertOutcome(message="No degraded metrics")

        outcome = AlertOutcome()
        if self.settings.slack_webhook_url:
            try:
                await self._post_slack(self.build_slack_payload(target, events))
                outcome.slack = ChannelResult(success=True)
            except httpx.HTTPError as e:
                logger.error("Failed to send Slack alert: %s", e)
                outcome.slack = ChannelResult(success=False, error=str(e))

        if self.settings.email_configured:
            try:
                await asyncio.to_thread(self._send_email, target, events)
                outcome.email = ChannelResult(success=True)
            except (smtplib.SMTPException, OSError) as e:
                logger.error("Failed to send email alert: %s", e)
                outcome.email = ChannelResult(success=False, error=str(e))

        if outcome.slack is None and outcome.email is None:
            outcome.message = "No alert channels configured"
            logger.info("Degradation on %s but no alert channels configured", target.url)
        return outcome

    # --- Slack ---

    def build_slack_payload(self, target: TrackedTarget, events: list[DegradationEvent]) -> dict:
        alert_time = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        blocks: list[dict] = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": ":rotating_light: Web Vitals Performance Alert"},
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Website:* {target.display_name}\n*URL:* {target.url}\n*Alert Time:* {alert_time}",
                },
            },
            {"type": "section", "text": {"type": "mrkdwn", "text": "*Degraded Metrics:*"}},
        ]
        for event in events:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"• {format_event(event)}"},
            })
        if self.settings.dashboard_url:
            blocks.append({
                "type": "actions",
                "elements": [{
                    "type": "button",
                    "text": {"type": "plain_text", "text": "View Dashboard"},
                    "url": self.settings.dashboard_url,
                    "action_id": "view_dashboard",
                }],
            })
        return {
            "text": ":rotating_light: Web Vitals Alert: Performance degradation detected",
            "blocks": blocks,
        }

    async def _post_slack(self, payload: dict) -> None:
        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            response = await client.post(self.settings.slack_webhook_url, json=payload)
            response.raise_for_status()
        logger.info("Slack alert sent")

    async def test_slack_webhook(self) -> bool:
        """Post a test message to the configured webhook."""
        if not self.settings.slack_webhook_url:
            return False
        payload = {
            "text": "Web Vitals Alert Test",
            "blocks": [{
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "*Web Vitals Monitoring Test*\n\nYour Slack integration is working correctly!",
                },
            }],
        }
        try:
            await self._post_slack(payload)
        except httpx.HTTPError as e:
            logger.error("Slack webhook test failed: %s", e)
            return False
        return True

    # --- Email ---

    async def test_email(self) -> bool:
        """Send a sample alert to the configured recipients."""
        if not self.settings.email_configured:
            return False
        sample_target = TrackedTarget(url="https://example.com/", display_name="Test Website")
        sample_events = [DegradationEvent(metric="lcp", previous_value=2.1, new_value=3.5, threshold_poor=2.5)]
        try:
            await asyncio.to_thread(self._send_email, sample_target, sample_events)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email configuration test failed: %s", e)
            return False
        return True

    def build_email(self, target: TrackedTarget, events: list[DegradationEvent]) -> MIMEText:
        alert_time = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        lines = [
            "Web Vitals Performance Alert",
            "",
            f"Website: {target.display_name}",
            f"URL: {target.url}",
            f"Alert Time: {alert_time}",
            "",
            "Degraded Metrics:",
        ]
        lines.extend(format_event(e) for e in events)
        if self.settings.dashboard_url:
            lines.extend(["", f"View your dashboard: {self.settings.dashboard_url}"])

        msg = MIMEText("\n".join(lines), "plain", "utf-8")
        msg["Subject"] = f"Web Vitals Alert: {target.display_name}"
        msg["From"] = self.settings.email_from
        msg["To"] = ", ".join(self.settings.email_recipients)
        return msg

    def _send_email(self, target: TrackedTarget, events: list[DegradationEvent]) -> None:
        """Blocking SMTP send; run in a worker thread."""
        msg = self.build_email(target, events)
        s = self.settings
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=30) as server:
            if s.smtp_use_tls:
                server.starttls()
            if s.smtp_user and s.smtp_password:
                server.login(s.smtp_user, s.smtp_password)
            server.sendmail(s.email_from, s.email_recipients, msg.as_string())
        logger.info("Email alert sent to %d recipients", len(s.email_recipients))
