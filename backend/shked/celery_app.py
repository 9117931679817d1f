"""
Celery worker with periodic bot notifications.

Beat runs every task on a fixed cadence; each task decides from the wall
clock whether there is something to send, so a missed run only skips one
window instead of replaying it.
"""
from celery import Celery
from celery.schedules import crontab
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo
import logging
from .config import settings
from .database import SessionLocal
from .models import Platform
from .services import formatting
from .services.academic import ScheduleReader, class_start, to_local, week_bounds
from .services.bot_clients import build_bot_client
from .services.link_tokens import utcnow
from .use_cases.broadcast import NotificationBroadcaster

logger = logging.getLogger(__name__)

celery_app = Celery(
    "shked",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
)

SCHEDULE_REMINDER_INTERVAL_MINUTES = 5


def _broadcasters(db):
    """One broadcaster per platform that has a bot token."""
    for platform in Platform:
        client = build_bot_client(platform)
        if not client.is_configured:
            continue
        yield NotificationBroadcaster(db, platform, client)


def daily_summaries(db, now: datetime) -> int:
    """Today's classes for every linked user of a group. Returns messages sent."""
    reader = ScheduleReader(db)
    today = to_local(now).date()
    sent = 0
    for broadcaster in _broadcasters(db):
        for account in broadcaster.recipients():
            classes = reader.schedule_for_day(account.user, today)
            if not classes:
                continue
            message = formatting.format_schedule(classes, f"Доброе утро! Расписание на {today.strftime('%d.%m.%Y')}")
            if broadcaster.send_to_one(message, external_id=account.external_id):
                sent += 1
    return sent


def homework_deadline_reminders(db, now: datetime) -> int:
    """Unsubmitted homework whose deadline enters the reminder window this hour."""
    reader = ScheduleReader(db)
    window_end = now + timedelta(hours=settings.HOMEWORK_REMINDER_HOURS)
    window_start = window_end - timedelta(hours=1)
    sent = 0
    for broadcaster in _broadcasters(db):
        for account in broadcaster.recipients():
            items = [
                (homework, submission)
                for homework, submission in reader.active_homework(account.user, window_start, until=window_end)
                if submission is None
            ]
            if not items:
                continue
            message = formatting.format_homework_list(
                items, now, title="Напоминание о дедлайне", show_hours_left=True
            )
            if broadcaster.send_to_one(message, external_id=account.external_id):
                sent += 1
    return sent


def schedule_reminders(db, now: datetime) -> int:
    """Classes starting REMINDER_MINUTES from now (one beat interval wide)."""
    reader = ScheduleReader(db)
    start = to_local(now) + timedelta(minutes=settings.REMINDER_MINUTES)
    end = start + timedelta(minutes=SCHEDULE_REMINDER_INTERVAL_MINUTES)
    # The window may cross local midnight
    days = sorted({start.date(), end.date()})
    sent = 0
    for broadcaster in _broadcasters(db):
        for account in broadcaster.recipients():
            for day in days:
                for schedule in reader.schedule_for_day(account.user, day):
                    if not (start <= class_start(schedule) < end):
                        continue
                    message = f"""⏰ *Напоминание о занятии*

Через {settings.REMINDER_MINUTES} минут начинается:
{formatting.format_next_class(schedule)}"""
                    if broadcaster.send_to_one(message, external_id=account.external_id):
                        sent += 1
    return sent


def weekly_homework_summaries(db, now: datetime) -> int:
    """This week's homework with the student's own status, sent on Monday morning."""
    reader = ScheduleReader(db)
    monday, _ = week_bounds(to_local(now).date())
    week_start = datetime.combine(monday, time.min, tzinfo=ZoneInfo(settings.TIMEZONE)).astimezone(timezone.utc)
    week_end = week_start + timedelta(days=7) - timedelta(seconds=1)
    sent = 0
    for broadcaster in _broadcasters(db):
        for account in broadcaster.recipients():
            if not account.user.group_id:
                continue
            items = reader.active_homework(account.user, week_start, until=week_end)
            if items:
                message = formatting.format_homework_list(items, now, title="Сводка по домашним заданиям на неделю")
            else:
                message = """📝 *Сводка по домашним заданиям*

📅 На эту неделю домашних заданий нет.
Хорошей недели! 😊"""
            if broadcaster.send_to_one(message, external_id=account.external_id):
                sent += 1
    return sent


def _run(name: str, job) -> int:
    db = SessionLocal()
    try:
        sent = job(db, utcnow())
        logger.info(f"✅ {name}: sent {sent} messages")
        return sent
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error in {name}: {e}", exc_info=True)
        raise
    finally:
        db.close()


@celery_app.task(name="send_daily_summaries")
def send_daily_summaries():
    if to_local(utcnow()).hour != settings.DAILY_SUMMARY_HOUR:
        return 0
    return _run("send_daily_summaries", daily_summaries)


@celery_app.task(name="send_homework_deadline_reminders")
def send_homework_deadline_reminders():
    return _run("send_homework_deadline_reminders", homework_deadline_reminders)


@celery_app.task(name="send_schedule_reminders")
def send_schedule_reminders():
    return _run("send_schedule_reminders", schedule_reminders)


@celery_app.task(name="send_weekly_homework_summaries")
def send_weekly_homework_summaries():
    local_now = to_local(utcnow())
    if local_now.weekday() != 0 or local_now.hour != settings.WEEKLY_SUMMARY_HOUR:
        return 0
    return _run("send_weekly_homework_summaries", weekly_homework_summaries)


# Schedule periodic processing
celery_app.conf.beat_schedule = {
    'daily-summaries-hourly': {
        'task': 'send_daily_summaries',
        'schedule': crontab(minute=0),
    },
    'homework-deadline-reminders-hourly': {
        'task': 'send_homework_deadline_reminders',
        'schedule': crontab(minute=5),
    },
    'schedule-reminders-every-5-min': {
        'task': 'send_schedule_reminders',
        'schedule': SCHEDULE_REMINDER_INTERVAL_MINUTES * 60.0,
    },
    'weekly-homework-summaries-hourly': {
        'task': 'send_weekly_homework_summaries',
        'schedule': crontab(minute=0),
    },
}
