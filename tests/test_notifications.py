from datetime import timedelta
from unittest.mock import Mock

import pytest

from hospital_scheduler.errors import NotFoundError
from hospital_scheduler.models import DomainEvent, NotificationType, Priority
from hospital_scheduler.notifications import (
    NotificationDispatcher,
    NotificationStore,
    ToastChannel,
)

from conftest import NOW


class Clock:
    def __init__(self) -> None:
        self.now = NOW

    def __call__(self):
        return self.now


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def dispatcher(clock) -> NotificationDispatcher:
    return NotificationDispatcher(
        NotificationStore(limit=3),
        ToastChannel(now_fn=clock, ttl_seconds=5),
        now_fn=clock,
    )


def _event(recipient: str = "u1", title: str = "t") -> DomainEvent:
    return DomainEvent(
        type=NotificationType.SCHEDULE_UPDATE,
        title=title,
        message="m",
        recipient_id=recipient,
    )


def test_notify_stores_and_toasts(dispatcher, clock) -> None:
    sent = dispatcher.notify(
        NotificationType.SYSTEM_ALERT,
        "Staffing Alert",
        "Emergency is understaffed",
        "u1",
        Priority.HIGH,
        "/staff-management",
        {"departmentId": "Emergency"},
    )

    assert sent.is_read is False
    assert sent.timestamp == NOW
    assert dispatcher.store.list_for_user("u1") == [sent]
    assert dispatcher.store.unread_count("u1") == 1
    assert [t.notification for t in dispatcher.toasts.active("u1")] == [sent]
    assert dispatcher.toasts.active("someone-else") == []


def test_store_is_bounded_newest_first(dispatcher) -> None:
    dispatcher.dispatch(_event(title=str(i)) for i in range(5))

    titles = [n.title for n in dispatcher.store.list_for_user("u1")]
    assert titles == ["4", "3", "2"]


def test_read_and_delete_are_scoped_to_recipient(dispatcher) -> None:
    first, second = dispatcher.dispatch([_event(), _event()])
    store = dispatcher.store

    with pytest.raises(NotFoundError):
        store.mark_read("u2", first.id)
    assert store.mark_read("u1", first.id).is_read
    assert store.unread_count("u1") == 1
    assert [n.id for n in store.list_for_user("u1", unread_only=True)] == [second.id]

    assert store.mark_all_read("u1") == 1
    assert store.unread_count("u1") == 0

    store.delete("u1", first.id)
    assert [n.id for n in store.list_for_user("u1")] == [second.id]
    with pytest.raises(NotFoundError):
        store.delete("u1", first.id)

    store.clear("u1")
    assert store.list_for_user("u1") == []


def test_toasts_expire(dispatcher, clock) -> None:
    dispatcher.dispatch([_event()])

    clock.now = NOW + timedelta(seconds=4)
    assert len(dispatcher.toasts.active()) == 1
    clock.now = NOW + timedelta(seconds=5)
    assert dispatcher.toasts.active() == []
    assert len(dispatcher.store.list_for_user("u1")) == 1


def test_publishing_drops_expired_toasts(dispatcher, clock) -> None:
    dispatcher.dispatch(_event(f"u{i}") for i in range(100))
    assert len(dispatcher.toasts._toasts) == 100

    clock.now = NOW + timedelta(seconds=5)
    dispatcher.dispatch([_event()])

    assert len(dispatcher.toasts._toasts) == 1
    assert dispatcher.toasts._toasts[0].expires_at == NOW + timedelta(seconds=10)


def test_failing_subscriber_is_retried_and_never_raises(dispatcher) -> None:
    flaky = Mock(side_effect=RuntimeError("socket closed"))
    healthy = Mock()
    dispatcher.toasts.subscribe(flaky)
    dispatcher.toasts.subscribe(healthy)

    (sent,) = dispatcher.dispatch([_event()])

    assert flaky.call_count == 2
    healthy.assert_called_once_with(sent)
    assert dispatcher.store.list_for_user("u1") == [sent]


def test_broken_toast_channel_does_not_block_store(clock) -> None:
    toasts = Mock(spec=ToastChannel)
    toasts.publish.side_effect = RuntimeError("down")
    dispatcher = NotificationDispatcher(NotificationStore(), toasts, now_fn=clock)

    (sent,) = dispatcher.dispatch([_event()])

    assert dispatcher.store.list_for_user("u1") == [sent]


def test_unsubscribe(dispatcher) -> None:
    subscriber = Mock()
    unsubscribe = dispatcher.toasts.subscribe(subscriber)
    unsubscribe()

    dispatcher.dispatch([_event()])

    subscriber.assert_not_called()
