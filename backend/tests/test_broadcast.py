from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from shked.models import Group, Platform
from shked.services.messenger_accounts import MessengerAccountRegistry
from shked.use_cases.broadcast import NotificationBroadcaster, notification_stats

from .conftest import FakeBotClient


class _TickingClock:
    """Monotonic clock that advances a fixed step on every read."""

    def __init__(self, step: float) -> None:
        self.value = 0.0
        self.step = step

    def __call__(self) -> float:
        self.value += self.step
        return self.value


def _broadcaster(db, client, **kwargs) -> NotificationBroadcaster:
    return NotificationBroadcaster(db, client.platform, client, batch_budget_seconds=kwargs.pop("budget", 60.0), **kwargs)


@pytest.fixture
def students(make_user, linked_account):
    """Three linked students with chat ids c1..c3."""
    result = []
    for n in (1, 2, 3):
        user = make_user()
        linked_account(f"c{n}", user)
        result.append(user)
    return result


def test_failures_are_isolated_per_recipient(db, students) -> None:
    client = FakeBotClient(failures={"c2": "HTTP_400: chat not found"})

    result = _broadcaster(db, client).broadcast_to_all("Привет")

    assert (result.sent, result.total, result.failed, result.skipped) == (2, 3, 1, 0)
    assert sorted(chat for chat, _ in client.sent) == ["c1", "c2", "c3"]


def test_unexpected_client_exception_does_not_abort_batch(db, students) -> None:
    client = FakeBotClient(failures={"c1": "raise"})

    result = _broadcaster(db, client).broadcast_to_all("Привет")

    assert result.sent == 2
    assert result.total == 3


def test_blocked_bot_deactivates_recipient(db, students) -> None:
    client = FakeBotClient(failures={"c3": "BOT_BLOCKED"})

    first = _broadcaster(db, client).broadcast_to_all("раз")
    second = _broadcaster(db, client).broadcast_to_all("два")

    assert first.total == 3
    assert second.total == 2
    assert MessengerAccountRegistry(db, Platform.TELEGRAM).find_by_external_id("c3").is_active is False


def test_recipients_exclude_unlinked_opted_out_and_inactive_owners(db, students, seen_account) -> None:
    seen_account("stranger")
    registry = MessengerAccountRegistry(db, Platform.TELEGRAM)
    registry.set_notifications("c1", False)
    students[1].is_active = False
    db.commit()
    client = FakeBotClient()

    result = _broadcaster(db, client).broadcast_to_all("Привет")

    assert result.total == 1
    assert client.sent == [("c3", "Привет")]


def test_broadcast_filters_by_role(db, students, make_user, linked_account) -> None:
    lector = make_user(role="lector", in_group=False)
    linked_account("lector-chat", lector)
    client = FakeBotClient()

    result = _broadcaster(db, client).broadcast_to_all("Совещание", role="lector")

    assert (result.sent, result.total) == (1, 1)
    assert client.sent == [("lector-chat", "Совещание")]


def test_broadcast_to_group_only_reaches_members(db, group, students, make_user, linked_account) -> None:
    other_group = Group(name="ПМ-11")
    db.add(other_group)
    db.commit()
    outsider = make_user(in_group=False, group_id=other_group.id)
    linked_account("outsider", outsider)
    client = FakeBotClient()

    result = _broadcaster(db, client).broadcast_to_group(group.id, "Пара отменена")

    assert result.total == 3
    assert "outsider" not in [chat for chat, _ in client.sent]


def test_budget_exhaustion_reports_skipped_not_total(db, students) -> None:
    client = FakeBotClient()
    # Start read + one read per recipient: budget of 2.5 steps covers two recipients.
    broadcaster = _broadcaster(db, client, budget=2.5, clock=_TickingClock(1.0))

    result = broadcaster.broadcast_to_all("Привет")

    assert result.total == 2
    assert result.sent == 2
    assert result.skipped == 1


def test_platforms_are_independent(db, make_user, linked_account) -> None:
    user = make_user()
    linked_account("tg", user, platform=Platform.TELEGRAM)
    linked_account("mx", user, platform=Platform.MAX)
    client = FakeBotClient(Platform.MAX)

    result = _broadcaster(db, client).broadcast_to_all("Привет")

    assert result.total == 1
    assert client.sent == [("mx", "Привет")]


def test_send_to_one_by_user_or_external_id(db, students) -> None:
    client = FakeBotClient()
    broadcaster = _broadcaster(db, client)

    assert broadcaster.send_to_one("a", user_id=students[0].id) is True
    assert broadcaster.send_to_one("b", external_id="c2") is True
    assert broadcaster.send_to_one("c", external_id="nobody") is False
    assert client.sent == [("c1", "a"), ("c2", "b")]
    with pytest.raises(ValueError):
        broadcaster.send_to_one("d")


def test_send_to_one_reports_delivery_failure_as_false(db, students) -> None:
    client = FakeBotClient(failures={"c1": "RATE_LIMIT:30"})

    assert _broadcaster(db, client).send_to_one("a", user_id=students[0].id) is False


def test_test_message_ignores_opt_out(db, students) -> None:
    MessengerAccountRegistry(db, Platform.TELEGRAM).set_notifications("c1", False)
    client = FakeBotClient()
    broadcaster = _broadcaster(db, client)

    assert broadcaster.send_to_one("обычное", user_id=students[0].id) is False
    assert broadcaster.send_test_message(students[0].id) is True
    assert "Тестовое сообщение" in client.sent[0][1]


def test_event_notifications(db, group, students, subject, add_class, add_homework, clock) -> None:
    client = FakeBotClient()
    broadcaster = _broadcaster(db, client)
    schedule = add_class(clock.now.date(), "10:00", "11:30", location="Ауд. 5")
    homework = add_homework(clock.now + timedelta(days=2), title="Курсовая", task_url="https://lms.local/1")

    changed = broadcaster.notify_schedule_change(schedule)
    new_homework = broadcaster.notify_new_homework(homework)
    reviewed = broadcaster.notify_homework_reviewed(
        homework, SimpleNamespace(user_id=students[0].id, grade=4, comment="Хорошо")
    )

    assert changed.sent == 3 and new_homework.sent == 3
    assert reviewed is True
    texts = client.texts_for("c1")
    assert "Изменение в расписании" in texts[0] and "Ауд. 5" in texts[0]
    assert "Курсовая" in texts[1] and "https://lms.local/1" in texts[1]
    assert "Оценка: 4/5" in texts[2] and "Хорошо" in texts[2]


def test_notification_stats(db, clock, students, seen_account) -> None:
    seen_account("stranger")
    MessengerAccountRegistry(db, Platform.TELEGRAM).set_notifications("c1", False)

    stats = notification_stats(db, Platform.TELEGRAM, now=clock.now)

    assert stats["totalUsers"] == 4
    assert stats["activeUsers"] == 4
    assert stats["notificationsEnabled"] == 3
    assert stats["linkedUsers"] == 3
    assert notification_stats(db, Platform.MAX)["totalUsers"] == 0



def test_new_homework_shows_local_deadline_and_escapes_title(db, students, add_homework) -> None:
    client = FakeBotClient()
    broadcaster = _broadcaster(db, client)
    # 22:15 UTC is already 01:15 of the next day in Moscow
    homework = add_homework(datetime(2024, 5, 15, 22, 15, tzinfo=timezone.utc), title="Лаба_3 *срочно*")

    broadcaster.notify_new_homework(homework)

    text = client.texts_for("c1")[0]
    assert "⏰ Дедлайн: 16.05.2024 01:15" in text
    assert r"Лаба\_3 \*срочно\*" in text
