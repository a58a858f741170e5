"""
Notification delivery: a bounded per-user store, an ephemeral toast
channel, and the dispatcher that feeds both from domain events.
"""

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel

from hospital_scheduler.errors import NotFoundError
from hospital_scheduler.models import (
    DomainEvent,
    Notification,
    NotificationType,
    Priority,
)

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]
ToastSubscriber = Callable[[Notification], None]

DEFAULT_NOTIFICATION_LIMIT = 50
DEFAULT_TOAST_TTL_SECONDS = 5.0


class NotificationStore:
    """
    Durable notification list per recipient, newest first. Only the most
    recent `limit` entries are kept.
    """

    def __init__(self, limit: int = DEFAULT_NOTIFICATION_LIMIT) -> None:
        self.limit = limit
        self._by_user: dict[str, list[Notification]] = {}

    def add(self, notification: Notification) -> None:
        items = self._by_user.setdefault(notification.user_id, [])
        items.insert(0, notification)
        del items[self.limit :]

    def list_for_user(
        self, user_id: str, *, unread_only: bool = False
    ) -> list[Notification]:
        items = self._by_user.get(user_id, [])
        if unread_only:
            return [n for n in items if not n.is_read]
        return list(items)

    def unread_count(self, user_id: str) -> int:
        return sum(1 for n in self._by_user.get(user_id, []) if not n.is_read)

    def _find(self, user_id: str, notification_id: str) -> Notification:
        for n in self._by_user.get(user_id, []):
            if n.id == notification_id:
                return n
        raise NotFoundError(
            f"Notification {notification_id} not found", ["not found"]
        )

    def mark_read(self, user_id: str, notification_id: str) -> Notification:
        notification = self._find(user_id, notification_id)
        notification.is_read = True
        return notification

    def mark_all_read(self, user_id: str) -> int:
        changed = 0
        for n in self._by_user.get(user_id, []):
            if not n.is_read:
                n.is_read = True
                changed += 1
        return changed

    def delete(self, user_id: str, notification_id: str) -> None:
        notification = self._find(user_id, notification_id)
        self._by_user[user_id].remove(notification)

    def clear(self, user_id: str) -> None:
        self._by_user.pop(user_id, None)


class Toast(BaseModel):
    notification: Notification
    expires_at: datetime


class ToastChannel:
    """
    Short-lived real-time alerts. Subscribers are called on publish; a
    subscriber that keeps failing is logged and skipped.
    """

    def __init__(
        self,
        *,
        now_fn: NowFn,
        ttl_seconds: float = DEFAULT_TOAST_TTL_SECONDS,
        retry_attempts: int = 1,
    ) -> None:
        self.now_fn = now_fn
        self.ttl = timedelta(seconds=ttl_seconds)
        self.retry_attempts = retry_attempts
        self._toasts: list[Toast] = []
        self._subscribers: list[ToastSubscriber] = []

    def subscribe(self, subscriber: ToastSubscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    def _purge(self, now: datetime) -> None:
        self._toasts = [t for t in self._toasts if t.expires_at > now]

    def publish(self, notification: Notification) -> Toast:
        now = self.now_fn()
        self._purge(now)
        toast = Toast(notification=notification, expires_at=now + self.ttl)
        self._toasts.append(toast)
        for subscriber in list(self._subscribers):
            self._deliver(subscriber, notification)
        return toast

    def _deliver(self, subscriber: ToastSubscriber, notification: Notification) -> None:
        for attempt in range(1 + self.retry_attempts):
            try:
                subscriber(notification)
                return
            except Exception:
                logger.warning(
                    "toast delivery failed for %s (attempt %d)",
                    notification.id,
                    attempt + 1,
                    exc_info=True,
                )

    def active(self, user_id: str | None = None) -> list[Toast]:
        self._purge(self.now_fn())
        if user_id is None:
            return list(self._toasts)
        return [t for t in self._toasts if t.notification.user_id == user_id]


class NotificationDispatcher:
    """
    Turns events into stored notifications plus toasts. Toast problems
    never reach the caller: the state change that produced the event has
    already been applied.
    """

    def __init__(
        self, store: NotificationStore, toasts: ToastChannel, *, now_fn: NowFn
    ) -> None:
        self.store = store
        self.toasts = toasts
        self.now_fn = now_fn

    def notify(
        self,
        type: NotificationType,
        title: str,
        message: str,
        recipient_id: str,
        priority: Priority = Priority.MEDIUM,
        action_url: str | None = None,
        metadata: dict[str, Any] | None = None,
        *,
        show_toast: bool = True,
    ) -> Notification:
        notification = Notification(
            id=uuid.uuid4().hex,
            type=type,
            title=title,
            message=message,
            timestamp=self.now_fn(),
            user_id=recipient_id,
            priority=priority,
            action_url=action_url,
            metadata=metadata or {},
        )
        self.store.add(notification)
        if show_toast:
            try:
                self.toasts.publish(notification)
            except Exception:
                logger.warning(
                    "toast publish failed for %s", notification.id, exc_info=True
                )
        return notification

    def dispatch(self, events: Iterable[DomainEvent]) -> list[Notification]:
        sent = [
            self.notify(
                event.type,
                event.title,
                event.message,
                event.recipient_id,
                event.priority,
                event.action_url,
                event.metadata,
            )
            for event in events
        ]
        if sent:
            logger.debug("dispatched %d notification(s)", len(sent))
        return sent
