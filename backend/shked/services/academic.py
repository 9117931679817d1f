"""Read-only lookups into schedule and homework data for bot commands and reminders."""
from __future__ import annotations

from datetime import date, datetime, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session, joinedload

from ..config import settings
from ..models import Homework, HomeworkSubmission, Schedule, User
from .link_tokens import as_utc


def to_local(moment: datetime) -> datetime:
    """Convert a UTC instant to the timezone class times are written in."""
    return as_utc(moment).astimezone(ZoneInfo(settings.TIMEZONE))


def week_bounds(day: date) -> tuple[date, date]:
    """Monday..Sunday of the week containing `day`."""
    start = day - timedelta(days=day.weekday())
    return start, start + timedelta(days=6)


def class_start(schedule: Schedule) -> datetime:
    """Local start of a class as an aware datetime."""
    start = datetime.strptime(schedule.start_time, "%H:%M").time()
    return datetime.combine(schedule.date, start, tzinfo=ZoneInfo(settings.TIMEZONE))


class ScheduleReader:
    """Queries a web account's timetable and homework through its group."""

    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: UUID) -> User | None:
        return self.db.query(User).options(joinedload(User.group)).filter(User.id == user_id).first()

    def schedule_for_day(self, user: User, day: date) -> list[Schedule]:
        if not user.group_id:
            return []
        return self.db.query(Schedule).options(joinedload(Schedule.subject)).filter(
            Schedule.group_id == user.group_id,
            Schedule.date == day,
        ).order_by(Schedule.start_time).all()

    def schedule_for_week(self, user: User, day: date) -> list[Schedule]:
        if not user.group_id:
            return []
        start, end = week_bounds(day)
        return self.db.query(Schedule).options(joinedload(Schedule.subject)).filter(
            Schedule.group_id == user.group_id,
            Schedule.date >= start,
            Schedule.date <= end,
        ).order_by(Schedule.date, Schedule.start_time).all()

    def next_class(self, user: User, now: datetime) -> Schedule | None:
        if not user.group_id:
            return None
        now = to_local(now)
        current_time = now.strftime("%H:%M")
        candidates = self.db.query(Schedule).options(joinedload(Schedule.subject)).filter(
            Schedule.group_id == user.group_id,
            Schedule.date >= now.date(),
        ).order_by(Schedule.date, Schedule.start_time).limit(20).all()
        for schedule in candidates:
            if schedule.date > now.date() or schedule.start_time >= current_time:
                return schedule
        return None

    def active_homework(
        self,
        user: User,
        now: datetime,
        until: datetime | None = None,
    ) -> list[tuple[Homework, HomeworkSubmission | None]]:
        """Active homework of the user's group with the user's own submission, if any."""
        if not user.group_id:
            return []
        query = self.db.query(Homework).options(joinedload(Homework.subject)).filter(
            Homework.group_id == user.group_id,
            Homework.is_active == True,  # noqa: E712
            Homework.deadline >= now,
        )
        if until is not None:
            query = query.filter(Homework.deadline <= until)
        homework = query.order_by(Homework.deadline).all()
        if not homework:
            return []

        submissions = {
            s.homework_id: s
            for s in self.db.query(HomeworkSubmission).filter(
                HomeworkSubmission.user_id == user.id,
                HomeworkSubmission.homework_id.in_([hw.id for hw in homework]),
            ).all()
        }
        return [(hw, submissions.get(hw.id)) for hw in homework]
