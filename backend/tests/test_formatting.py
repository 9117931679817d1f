from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from shked.services.formatting import (
    escape_markdown,
    event_type_emoji,
    format_deadline,
    format_homework_list,
    format_next_class,
    format_schedule,
    format_week,
    parse_russian_date,
    relative_time,
    submission_status_label,
    truncate_text,
)

# 2024-05-15 is a Wednesday
WEDNESDAY = date(2024, 5, 15)


def _class(day: date, start: str, *, name: str = "Физика", location: str | None = "Ауд. 3", event_type="Семинар"):
    return SimpleNamespace(
        subject=SimpleNamespace(name=name, instructor="Иванов И.И."),
        date=day,
        day_of_week=day.isoweekday(),
        start_time=start,
        end_time="11:30",
        location=location,
        event_type=event_type,
        description=None,
    )


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("что сегодня", WEDNESDAY),
        ("Что у меня ЗАВТРА?", WEDNESDAY + timedelta(days=1)),
        ("расписание на пятницу", date(2024, 5, 17)),
        ("а в понедельник?", date(2024, 5, 20)),
        ("в среду", WEDNESDAY),
        ("пары 01.09.2024", date(2024, 9, 1)),
        ("31/02/2024", None),
        ("просто текст", None),
    ],
)
def test_parse_russian_date(text: str, expected) -> None:
    assert parse_russian_date(text, WEDNESDAY) == expected


@pytest.mark.parametrize(
    ("event_type", "emoji"),
    [("Лекция", "🎓"), ("семинар", "💬"), ("Практика", "🔬"), ("Экзамен", "📝"), ("Зачёт", "✅"), (None, "📚"), ("Другое", "📚")],
)
def test_event_type_emoji(event_type, emoji: str) -> None:
    assert event_type_emoji(event_type) == emoji


def test_format_schedule_numbers_classes_and_skips_missing_location() -> None:
    text = format_schedule(
        [_class(WEDNESDAY, "09:00"), _class(WEDNESDAY, "10:45", name="Химия", location=None)],
        title="Расписание на сегодня",
    )

    assert text.startswith("📅 *Расписание на сегодня:*")
    assert "1. *Физика*" in text
    assert "2. *Химия*" in text
    assert text.count("📍") == 1
    assert "💬 Семинар" in text


def test_format_schedule_empty_message() -> None:
    assert format_schedule([], empty="📅 На завтра занятий нет.") == "📅 На завтра занятий нет."


def test_format_week_groups_by_weekday() -> None:
    text = format_week([_class(WEDNESDAY, "09:00"), _class(WEDNESDAY + timedelta(days=2), "12:00", name="Химия")])

    assert "*Среда*" in text
    assert "*Пятница*" in text
    assert "*Понедельник*" not in text
    assert text.index("Среда") < text.index("Пятница")


def test_format_next_class() -> None:
    assert format_next_class(None) == "📅 Следующих занятий нет."
    text = format_next_class(_class(WEDNESDAY, "09:00"))
    assert "📅 15.05.2024" in text
    assert "⏰ 09:00 - 11:30" in text


def test_homework_list_shows_status_and_grade() -> None:
    now = datetime(2024, 5, 15, 9, 0, tzinfo=timezone.utc)
    homework = SimpleNamespace(title="Реферат", subject=SimpleNamespace(name="История"), deadline=now + timedelta(hours=2, minutes=10))
    submission = SimpleNamespace(status="REVIEWED", grade=5)

    full = format_homework_list([(homework, submission)], now, title="Домашние задания")
    due = format_homework_list([(homework, None)], now, title="Ближайшие дедлайны", show_hours_left=True)

    # 11:10 UTC is 14:10 in Moscow
    assert "⏰ Дедлайн: 15.05.2024 14:10" in full
    assert "✅ Проверено" in full and "🎯 Оценка: 5" in full
    assert "Осталось: 3 ч" in due
    assert "❌ Не сдано" in due


@pytest.mark.parametrize(
    ("status", "label"),
    [("REVIEWED", "✅ Проверено"), ("SUBMITTED", "📤 Сдано"), ("DRAFT", "❌ Не сдано")],
)
def test_submission_status_label(status: str, label: str) -> None:
    assert submission_status_label(SimpleNamespace(status=status)) == label


def test_escape_and_truncate() -> None:
    assert escape_markdown("a_b*c`d[e]. - !") == r"a\_b\*c\`d\[e]. - !"
    assert truncate_text("короткий", 20) == "короткий"
    assert truncate_text("очень длинный текст", 10) == "очень д..."


def test_relative_time() -> None:
    now = datetime(2024, 5, 15, 9, 0)

    assert relative_time(now - timedelta(minutes=1), now) == "уже прошло"
    assert relative_time(now + timedelta(minutes=30), now) == "через 30 мин"
    assert relative_time(now + timedelta(hours=5), now) == "через 5 ч"
    assert relative_time(now + timedelta(days=3), now) == "через 3 дн"


def test_deadline_near_local_midnight_moves_to_next_day() -> None:
    # 21:30 UTC is 00:30 of the next day in Moscow
    assert format_deadline(datetime(2024, 5, 15, 21, 30, tzinfo=timezone.utc)) == "16.05.2024 00:30"
    assert format_deadline(datetime(2024, 5, 15, 20, 30)) == "15.05.2024 23:30"


def test_schedule_escapes_database_values() -> None:
    lesson = _class(WEDNESDAY, "09:00", name="Базы_данных", location="Ауд. *5*")

    text = format_schedule([lesson])

    assert r"*Базы\_данных*" in text
    assert r"Ауд. \*5\*" in text
