# Outbound notifications (Slack incoming webhook by default).
# Delivery is fire-and-forget: handed to a background executor, failures logged and dropped, never retried,
# and never allowed to fail the operation that triggered them.
from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Protocol

import requests

from .redis_client import truthy

logger = logging.getLogger("campuscrate.notifications")

SLACK_WEBHOOK = os.getenv("SLACK_WEBHOOK", "").strip()
NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "3"))


@dataclass
class Notification:
    text: str
    blocks: List[Dict[str, Any]] = field(default_factory=list)


class NotificationSink(Protocol):
    def send(self, notification: Notification) -> None: ...


class SlackWebhookSink:
    """Posts Slack Block Kit payloads to an incoming-webhook URL."""

    def __init__(self, webhook_url: str, timeout: float = NOTIFY_TIMEOUT_SECONDS) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout

    def send(self, notification: Notification) -> None:
        resp = requests.post(
            self.webhook_url,
            json={"text": notification.text, "blocks": notification.blocks},
            timeout=self.timeout,
        )
        resp.raise_for_status()


class NullSink:
    def send(self, notification: Notification) -> None:
        logger.debug("notification.skipped", extra={"text": notification.text})


class Notifier:
    """Dispatches notifications to a sink without blocking the caller.

    inline=True delivers on the calling thread (still swallowing failures); tests use it to
    observe deliveries deterministically.
    """

    def __init__(self, sink: NotificationSink, inline: bool = False) -> None:
        self.sink = sink
        self.inline = inline
        self._executor: Optional[ThreadPoolExecutor] = None

    def _deliver(self, notification: Notification) -> None:
        try:
            self.sink.send(notification)
            logger.info("notification.sent", extra={"text": notification.text})
        except Exception as exc:
            logger.error("notification.failed: %s", exc, extra={"text": notification.text})

    def notify(self, notification: Notification) -> None:
        if self.inline:
            self._deliver(notification)
            return
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify")
        try:
            self._executor.submit(self._deliver, notification)
        except RuntimeError as exc:
            # Executor already shut down (process exiting)
            logger.warning("notification.dropped: %s", exc)


def _default_sink() -> NotificationSink:
    if SLACK_WEBHOOK and truthy(os.getenv("NOTIFICATIONS_ENABLED", "true")):
        return SlackWebhookSink(SLACK_WEBHOOK)
    logger.info("Slack webhook not configured; notifications are disabled")
    return NullSink()


_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = Notifier(_default_sink())
    return _notifier


def set_notifier(notifier: Optional[Notifier]) -> None:
    """Replace the process-wide notifier (None restores the env-configured default)."""
    global _notifier
    _notifier = notifier


def notify(notification: Notification) -> None:
    get_notifier().notify(notification)


# ----------------
# Message formatting
# ----------------
def _money(cents: int) -> str:
    return f"{cents / 100:.2f}"


def _day(d: date) -> str:
    return d.isoformat()


def format_new_lending_request(request: Any, item: Any, borrower: Any) -> Notification:
    return Notification(
        text="New lending request",
        blocks=[
            {"type": "header", "text": {"type": "plain_text", "text": "New Lending Request"}},
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Item:*\n{item.title}"},
                    {"type": "mrkdwn", "text": f"*Borrower:*\n{borrower.name}"},
                    {"type": "mrkdwn", "text": f"*Dates:*\n{_day(request.start_date)} - {_day(request.end_date)}"},
                    {"type": "mrkdwn", "text": f"*Total cost:*\n{_money(request.total_cost_cents)}"},
                ],
            },
            {"type": "context", "elements": [{"type": "mrkdwn", "text": f"Request ID: {request.id}"}]},
        ],
    )


def format_request_accepted(request: Any, item: Any) -> Notification:
    return Notification(
        text="Lending request accepted",
        blocks=[
            {"type": "header", "text": {"type": "plain_text", "text": "Request Accepted"}},
            {"type": "section", "text": {"type": "mrkdwn", "text": f"Your request for *{item.title}* has been accepted."}},
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Start date:*\n{_day(request.start_date)}"},
                    {"type": "mrkdwn", "text": f"*End date:*\n{_day(request.end_date)}"},
                ],
            },
        ],
    )


def format_new_review(review: Any, reviewer: Any) -> Notification:
    stars = "*" * int(review.rating)
    return Notification(
        text=f"New review received ({review.rating}/5)",
        blocks=[
            {"type": "header", "text": {"type": "plain_text", "text": f"New Review Received ({review.rating}/5)"}},
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*From:* {reviewer.name}\n*Rating:* {stars}\n*Comment:* \"{review.comment or ''}\"",
                },
            },
        ],
    )
