from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shked.database import Base
from shked.models import Group, Homework, Platform, Schedule, Subject, User
from shked.services.messenger_accounts import MessengerAccountRegistry, MessengerProfile


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


class FakeBotClient:
    """In-memory bot client; `failures` maps chat id to an error code or 'raise'."""

    is_configured = True

    def __init__(self, platform: Platform = Platform.TELEGRAM, *, failures: dict[str, str] | None = None) -> None:
        self.platform = Platform(platform)
        self.supports_callback_answers = self.platform is Platform.TELEGRAM
        self.failures = dict(failures or {})
        self.sent: list[tuple[str, str]] = []
        self.answered: list[str] = []
        self.webhooks: list[tuple[str, str | None]] = []

    def send_message(self, chat_id: str, text: str, parse_mode: str | None = "Markdown"):
        self.sent.append((chat_id, text))
        error = self.failures.get(chat_id)
        if error == "raise":
            raise RuntimeError("connection reset")
        if error:
            return False, error
        return True, None

    def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> bool:
        self.answered.append(callback_query_id)
        return True

    def set_webhook(self, url: str, secret: str | None = None) -> bool:
        self.webhooks.append((url, secret))
        return True

    def get_webhook_info(self):
        return {"ok": True, "result": {"url": ""}}

    def get_me(self):
        return {"ok": True, "result": {"username": "shked_bot"}}

    def texts_for(self, chat_id: str) -> list[str]:
        return [text for sent_chat, text in self.sent if sent_chat == chat_id]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock() -> FakeClock:
    # 09:00 UTC keeps the local (Moscow) calendar day equal to the UTC one.
    today = datetime.now(timezone.utc).date()
    return FakeClock(datetime(today.year, today.month, today.day, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def group(db) -> Group:
    group = Group(name="ИВТ-21")
    db.add(group)
    db.commit()
    return group


@pytest.fixture
def make_user(db, group):
    counter = {"n": 0}

    def _make_user(*, role: str = "student", in_group: bool = True, first_name: str = "Иван", **extra) -> User:
        counter["n"] += 1
        user = User(
            email=f"user{counter['n']}@shked.local",
            password_hash="x",
            first_name=first_name,
            last_name="Петров",
            role=role,
            group_id=extra.pop("group_id", group.id if in_group else None),
            **extra,
        )
        db.add(user)
        db.commit()
        return user

    return _make_user


@pytest.fixture
def seen_account(db):
    """Register a messenger identity the way an inbound update would."""

    def _seen(external_id: str, *, platform: Platform = Platform.TELEGRAM, chat_id: str | None = None, username=None):
        registry = MessengerAccountRegistry(db, platform)
        registry.upsert_profile(external_id, chat_id or external_id, MessengerProfile(first_name="Иван", username=username))
        return registry.find_by_external_id(external_id)

    return _seen


@pytest.fixture
def linked_account(db, seen_account):
    def _linked(external_id: str, user: User, *, platform: Platform = Platform.TELEGRAM):
        seen_account(external_id, platform=platform)
        return MessengerAccountRegistry(db, platform).link_account(external_id, user.id)

    return _linked


@pytest.fixture
def subject(db) -> Subject:
    subject = Subject(name="Математический анализ", instructor="Колчин А.А.")
    db.add(subject)
    db.commit()
    return subject


@pytest.fixture
def add_class(db, group, subject):
    def _add_class(day: date, start: str = "10:00", end: str = "11:30", **extra) -> Schedule:
        schedule = Schedule(
            group_id=group.id,
            subject_id=subject.id,
            date=day,
            day_of_week=day.isoweekday(),
            start_time=start,
            end_time=end,
            location=extra.pop("location", "Ауд. 101"),
            event_type=extra.pop("event_type", "Лекция"),
            **extra,
        )
        db.add(schedule)
        db.commit()
        return schedule

    return _add_class


@pytest.fixture
def add_homework(db, group, subject):
    def _add_homework(deadline: datetime, title: str = "Лабораторная №1", **extra) -> Homework:
        homework = Homework(group_id=group.id, subject_id=subject.id, title=title, deadline=deadline, **extra)
        db.add(homework)
        db.commit()
        return homework

    return _add_homework
