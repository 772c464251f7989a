"""
NOTIFICATION SERVICE

Operator-facing notification sinks. Fire-and-forget: callers never wait on
delivery and a failing sink never affects the others.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, Iterable, List, Optional, Set

import httpx

from crash_console.domain.models import Notification, NotificationVariant
from crash_console.infrastructure.types import NotificationSink

logger = logging.getLogger(__name__)


def format_tiered_message(notification: Notification) -> str:
    if notification.variant is NotificationVariant.DESTRUCTIVE:
        prefix = "FAILED"
    elif notification.variant is NotificationVariant.SUCCESS:
        prefix = "DONE"
    else:
        prefix = "INFO"
    return f"[{prefix}] {notification.title}\n\n{notification.description}".strip()


class NotificationFeed:
    """Bounded in-memory feed the console reads back (newest first)."""

    def __init__(self, maxlen: int = 50):
        self._items: Deque[Notification] = deque(maxlen=maxlen)

    def notify(self, notification: Notification) -> None:
        self._items.append(notification)

    def recent(self, limit: Optional[int] = None) -> List[Notification]:
        items = list(reversed(self._items))
        return items[: max(0, limit)] if limit is not None else items

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class LoggingNotificationSink:
    def notify(self, notification: Notification) -> None:
        level = logging.WARNING if notification.variant is NotificationVariant.DESTRUCTIVE else logging.INFO
        logger.log(level, "%s: %s", notification.title, notification.description)


class TelegramNotificationSink:
    def __init__(
        self,
        token: str,
        chat_id: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token = token
        self._chat_id = chat_id
        self._timeout = timeout
        self._transport = transport
        self._pending: Set[asyncio.Task] = set()

    def notify(self, notification: Notification) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.info("Telegram alert skipped (no running event loop)")
            return
        task = loop.create_task(self.send(notification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def send(self, notification: Notification) -> bool:
        url = f"https://api.telegram.org/bot{self._token}/sendMessage"
        payload = {"chat_id": self._chat_id, "text": format_tiered_message(notification)}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(url, json=payload)
                resp.raise_for_status()
            return True
        except httpx.HTTPError as exc:
            logger.error("Telegram alert failed: %s", exc)
            return False


class CompositeNotificationSink:
    def __init__(self, sinks: Iterable[NotificationSink]):
        self._sinks = list(sinks)

    def notify(self, notification: Notification) -> None:
        for sink in self._sinks:
            try:
                sink.notify(notification)
            except Exception:
                logger.exception("Notification sink %s failed", type(sink).__name__)


def build_notification_sink(
    feed: NotificationFeed,
    telegram_enabled: bool = False,
    telegram_token: Optional[str] = None,
    telegram_chat_id: Optional[str] = None,
) -> CompositeNotificationSink:
    sinks: List[NotificationSink] = [feed, LoggingNotificationSink()]
    if telegram_enabled and telegram_token and telegram_chat_id:
        sinks.append(TelegramNotificationSink(telegram_token, telegram_chat_id))
    elif telegram_enabled:
        logger.warning("Telegram credentials not set; skipping Telegram notifications")
    return CompositeNotificationSink(sinks)
