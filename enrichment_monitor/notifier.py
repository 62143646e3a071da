from datetime import datetime, timezone
from typing import Optional, Protocol

import aiohttp
from loguru import logger

from enrichment_monitor.models import (
    EnrichmentRequest,
    NotificationContext,
    NotificationKind,
    StatusSnapshot,
)

FOOTER_TEXT = "SearchLeads Enrichment Service"

_COLORS = {
    NotificationKind.failed: 0xFF0000,
    NotificationKind.cancelled: 0xFFA500,
}
_TITLES = {
    NotificationKind.failed: "Enrichment Request Failed",
    NotificationKind.cancelled: "Enrichment Request Cancelled",
}
_REASON_LABELS = {
    NotificationKind.failed: "Error Message",
    NotificationKind.cancelled: "Cancellation Reason",
}
_TIME_LABELS = {
    NotificationKind.failed: "Failure Time",
    NotificationKind.cancelled: "Cancelled Time",
}


class Notifier(Protocol):
    async def notify_failed(
        self, request: EnrichmentRequest, snapshot: StatusSnapshot
    ) -> None: ...

    async def notify_cancelled(
        self, request: EnrichmentRequest, snapshot: StatusSnapshot
    ) -> None: ...


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_notification_context(
    kind: NotificationKind, request: EnrichmentRequest, snapshot: StatusSnapshot
) -> NotificationContext:
    """Merges snapshot and request fields, the snapshot winning, with fallbacks for absent values"""
    requested_leads = snapshot.requested_leads_count or request.no_of_leads

    return NotificationContext(
        kind=kind,
        record_id=snapshot.record_id or "Unknown",
        file_name=snapshot.file_name or request.file_name or "Unknown",
        requested_leads=str(requested_leads) if requested_leads is not None else "Unknown",
        reason=snapshot.error_message
        or snapshot.cancellation_reason
        or "No details provided",
        apollo_link=snapshot.apollo_link or request.apollo_link or "Not provided",
        occurred_at=snapshot.failure_time or snapshot.cancelled_time or _utc_now(),
    )


def build_discord_payload(context: NotificationContext) -> dict:
    title = _TITLES[context.kind]
    embed = {
        "title": title,
        "color": _COLORS[context.kind],
        "fields": [
            {"name": "Record ID", "value": context.record_id, "inline": True},
            {"name": "File Name", "value": context.file_name, "inline": True},
            {"name": "Requested Leads", "value": context.requested_leads, "inline": True},
            {"name": _REASON_LABELS[context.kind], "value": context.reason, "inline": False},
            {"name": "Apollo Link", "value": context.apollo_link, "inline": False},
            {"name": _TIME_LABELS[context.kind], "value": context.occurred_at, "inline": True},
        ],
        "timestamp": _utc_now(),
        "footer": {"text": FOOTER_TEXT},
    }
    return {"content": f"**{title}**", "embeds": [embed]}


class DiscordNotifier:
    """Posts failure and cancellation alerts to a Discord webhook.

    Delivery is best-effort: errors are logged and never raised to the caller.
    """

    def __init__(self, webhook_url: str, timeout: float = 10.0):
        self.webhook_url = webhook_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.logger = logger

    async def notify_failed(
        self, request: EnrichmentRequest, snapshot: StatusSnapshot
    ) -> bool:
        return await self._send(NotificationKind.failed, request, snapshot)

    async def notify_cancelled(
        self, request: EnrichmentRequest, snapshot: StatusSnapshot
    ) -> bool:
        return await self._send(NotificationKind.cancelled, request, snapshot)

    async def _send(
        self,
        kind: NotificationKind,
        request: EnrichmentRequest,
        snapshot: StatusSnapshot,
    ) -> bool:
        self.logger.info(f"Sending Discord notification for {kind.value} status")
        try:
            context = build_notification_context(kind, request, snapshot)
            payload = build_discord_payload(context)
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.webhook_url, json=payload) as response:
                    response.raise_for_status()
        except Exception as e:
            self.logger.error(f"Failed to send Discord notification: {e!r}")
            return False

        self.logger.info("Discord notification sent successfully")
        return True


class LoggingNotifier:
    """Fallback used when no webhook is configured"""

    def __init__(self):
        self.logger = logger

    async def notify_failed(
        self, request: EnrichmentRequest, snapshot: StatusSnapshot
    ) -> None:
        self._log(NotificationKind.failed, request, snapshot)

    async def notify_cancelled(
        self, request: EnrichmentRequest, snapshot: StatusSnapshot
    ) -> None:
        self._log(NotificationKind.cancelled, request, snapshot)

    def _log(
        self,
        kind: NotificationKind,
        request: EnrichmentRequest,
        snapshot: StatusSnapshot,
    ) -> None:
        context = build_notification_context(kind, request, snapshot)
        self.logger.warning(
            f"Enrichment {kind.value} for record {context.record_id} "
            f"({context.file_name}): {context.reason}"
        )


def notifier_for(webhook_url: Optional[str]) -> "Notifier":
    if webhook_url:
        return DiscordNotifier(webhook_url)
    return LoggingNotifier()
