"""Message formatting helpers for bot replies (Telegram-flavoured Markdown)."""
from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta, timezone

from .academic import to_local

WEEKDAYS_RU = ["Понедельник", "Вторник", "Среда", "Четверг", "Пятница", "Суббота", "Воскресенье"]

# Keyword -> Python weekday (Monday = 0)
_WEEKDAY_KEYWORDS = {
    "понедельник": 0, "monday": 0,
    "вторник": 1, "tuesday": 1,
    "сред": 2, "wednesday": 2,
    "четверг": 3, "thursday": 3,
    "пятниц": 4, "friday": 4,
    "суббот": 5, "saturday": 5,
    "воскресень": 6, "sunday": 6,
}

_DATE_RE = re.compile(r"(\d{1,2})[./](\d{1,2})[./](\d{4})")
# Characters with meaning in Telegram legacy Markdown (parse_mode="Markdown")
_MARKDOWN_SPECIAL = re.compile(r"([_*`\[])")


def _class_lines(schedule, *, with_description: bool = False) -> list[str]:
    lines = [f"   ⏰ {schedule.start_time} - {schedule.end_time}"]
    if schedule.location:
        lines.append(f"   📍 {escape_markdown(schedule.location)}")
    if schedule.subject.instructor:
        lines.append(f"   👨‍🏫 {escape_markdown(schedule.subject.instructor)}")
    if schedule.event_type:
        lines.append(f"   {event_type_emoji(schedule.event_type)} {escape_markdown(schedule.event_type)}")
    if with_description and schedule.description:
        lines.append(f"   📝 {escape_markdown(schedule.description)}")
    return lines


def format_schedule(schedules, title: str = "Расписание", empty: str = "📅 Занятий нет.") -> str:
    if not schedules:
        return empty

    parts = [f"📅 *{title}:*", ""]
    for index, schedule in enumerate(schedules, start=1):
        parts.append(f"{index}. *{escape_markdown(schedule.subject.name)}*")
        parts.extend(_class_lines(schedule, with_description=True))
        parts.append("")
    return "\n".join(parts)


def format_week(schedules) -> str:
    """Week view grouped by weekday, Monday first."""
    if not schedules:
        return "📅 На эту неделю занятий нет."

    by_day: dict[int, list] = {}
    for schedule in schedules:
        by_day.setdefault(schedule.day_of_week, []).append(schedule)

    parts = ["📅 *Расписание на неделю:*", ""]
    for day in range(1, 8):
        classes = by_day.get(day)
        if not classes:
            continue
        parts.append(f"*{WEEKDAYS_RU[day - 1]}*")
        for index, schedule in enumerate(classes, start=1):
            parts.append(f"{index}. *{escape_markdown(schedule.subject.name)}*")
            parts.extend(_class_lines(schedule))
            parts.append("")
    return "\n".join(parts)


def format_next_class(schedule) -> str:
    if schedule is None:
        return "📅 Следующих занятий нет."

    parts = ["⏰ *Следующее занятие:*", "", f"📚 *{escape_markdown(schedule.subject.name)}*"]
    parts.append(f"📅 {schedule.date.strftime('%d.%m.%Y')}")
    parts.extend(line.strip() for line in _class_lines(schedule))
    return "\n".join(parts)


def submission_status_label(submission) -> str:
    if submission is None:
        return "❌ Не сдано"
    if submission.status == "REVIEWED":
        return "✅ Проверено"
    if submission.status == "SUBMITTED":
        return "📤 Сдано"
    return "❌ Не сдано"


def format_homework_list(items, now: datetime, *, title: str, show_hours_left: bool = False) -> str:
    """`items` are (homework, submission-or-None) pairs."""
    parts = [f"📝 *{title}:*", ""]
    for index, (homework, submission) in enumerate(items, start=1):
        parts.append(f"{index}. *{escape_markdown(homework.title)}*")
        parts.append(f"   📚 {escape_markdown(homework.subject.name)}")
        deadline = homework.deadline
        if show_hours_left:
            seconds_left = (_naive(deadline) - _naive(now)).total_seconds()
            hours_left = max(0, math.ceil(seconds_left / 3600))
            parts.append(f"   ⏰ Осталось: {hours_left} ч")
        else:
            parts.append(f"   ⏰ Дедлайн: {format_deadline(deadline)}")
        parts.append(f"   📊 Статус: {submission_status_label(submission)}")
        if submission is not None and submission.grade is not None:
            parts.append(f"   🎯 Оценка: {submission.grade}")
        parts.append("")
    return "\n".join(parts)


def format_deadline(deadline: datetime) -> str:
    """Deadline as the local wall-clock time students see in the web app."""
    return to_local(deadline).strftime("%d.%m.%Y %H:%M")


def _naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None)


def event_type_emoji(event_type: str | None) -> str:
    if not event_type:
        return "📚"
    kind = event_type.lower()
    if "лекци" in kind or "lecture" in kind:
        return "🎓"
    if "семинар" in kind or "seminar" in kind:
        return "💬"
    if "практик" in kind or "practice" in kind:
        return "🔬"
    if "экзамен" in kind or "exam" in kind:
        return "📝"
    if "зачет" in kind or "зачёт" in kind or "test" in kind:
        return "✅"
    return "📚"


def parse_russian_date(text: str, today: date) -> date | None:
    """Understands 'сегодня', 'завтра', weekday names and DD.MM.YYYY."""
    lowered = text.lower().strip()

    if "сегодня" in lowered or "today" in lowered:
        return today
    if "завтра" in lowered or "tomorrow" in lowered:
        return today + timedelta(days=1)

    for keyword, weekday in _WEEKDAY_KEYWORDS.items():
        if keyword in lowered:
            return today + timedelta(days=(weekday - today.weekday()) % 7)

    match = _DATE_RE.search(text)
    if match:
        day, month, year = (int(g) for g in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None
    return None


def escape_markdown(text: str) -> str:
    """Escape values interpolated into a legacy Markdown reply."""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", text)


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def relative_time(target: datetime, now: datetime) -> str:
    minutes = int((_naive(target) - _naive(now)).total_seconds() // 60)
    if minutes < 0:
        return "уже прошло"
    if minutes < 60:
        return f"через {minutes} мин"
    hours = minutes // 60
    if hours < 24:
        return f"через {hours} ч"
    return f"через {hours // 24} дн"
