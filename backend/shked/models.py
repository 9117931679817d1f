"""SQLAlchemy models: messenger bridge tables plus the read-only academic collaborators."""
from sqlalchemy import (
    Boolean, Column, String, Integer, Date, DateTime, Text, Uuid,
    ForeignKey, CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
import uuid
from .database import Base


class Platform(str, enum.Enum):
    """Messenger platforms the bot is connected to."""
    TELEGRAM = "telegram"
    MAX = "max"


PLATFORM_VALUES = [p.value for p in Platform]

USER_ROLES = [
    'admin', 'student', 'lector', 'mentor', 'assistant',
    'co_lecturer', 'department_admin', 'education_office_head',
]

SUBMISSION_STATUSES = ['SUBMITTED', 'REVIEWED', 'RETURNED']


class Group(Base):
    """Study group."""
    __tablename__ = "groups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    users = relationship("User", back_populates="group")
    schedules = relationship("Schedule", back_populates="group")


class User(Base):
    """Web account."""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(String(50), nullable=False, index=True, default="student")
    group_id = Column(Uuid, ForeignKey("groups.id"), nullable=True, index=True)
    # Monotonically increasing version used to revoke previously issued tokens.
    token_version = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(role.in_(USER_ROLES), name='chk_user_role'),
    )

    group = relationship("Group", back_populates="users")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part) or self.email


class Subject(Base):
    """Course subject."""
    __tablename__ = "subjects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    instructor = Column(String(255), nullable=True)


class Schedule(Base):
    """Single class in a group timetable."""
    __tablename__ = "schedules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid, ForeignKey("groups.id"), nullable=False, index=True)
    subject_id = Column(Uuid, ForeignKey("subjects.id"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    # 1 = Monday ... 7 = Sunday
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(String(5), nullable=False)  # "HH:MM"
    end_time = Column(String(5), nullable=False)
    location = Column(String(255), nullable=True)
    event_type = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)

    group = relationship("Group", back_populates="schedules")
    subject = relationship("Subject")


class Homework(Base):
    """Homework assignment for a group."""
    __tablename__ = "homework"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid, ForeignKey("groups.id"), nullable=False, index=True)
    subject_id = Column(Uuid, ForeignKey("subjects.id"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    task_url = Column(String(1024), nullable=True)
    deadline = Column(DateTime(timezone=True), nullable=False, index=True)
    is_active = Column(Boolean, default=True)

    subject = relationship("Subject")
    submissions = relationship("HomeworkSubmission", back_populates="homework")


class HomeworkSubmission(Base):
    """Student submission for a homework."""
    __tablename__ = "homework_submissions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    homework_id = Column(Uuid, ForeignKey("homework.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="SUBMITTED")
    grade = Column(Integer, nullable=True)
    comment = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(status.in_(SUBMISSION_STATUSES), name='chk_submission_status'),
        UniqueConstraint('homework_id', 'user_id', name='uq_submission_homework_user'),
    )

    homework = relationship("Homework", back_populates="submissions")


class LinkToken(Base):
    """One-time token binding a web account to a messenger identity."""
    __tablename__ = "link_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    platform = Column(String(20), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")

    __table_args__ = (
        CheckConstraint(platform.in_(PLATFORM_VALUES), name='chk_link_token_platform'),
        Index('idx_link_tokens_user_platform', 'user_id', 'platform'),
    )


class MessengerAccount(Base):
    """External messenger identity, optionally owned by a web account."""
    __tablename__ = "messenger_accounts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    platform = Column(String(20), nullable=False)
    external_id = Column(String(64), nullable=False)
    chat_id = Column(String(64), nullable=False)
    username = Column(String(255), nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    # NULL until the identity is linked through /link
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    notifications = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User")

    __table_args__ = (
        CheckConstraint(platform.in_(PLATFORM_VALUES), name='chk_messenger_platform'),
        UniqueConstraint('platform', 'external_id', name='uq_messenger_platform_external'),
        UniqueConstraint('platform', 'user_id', name='uq_messenger_platform_user'),
    )

    @property
    def display_name(self) -> str:
        if self.username:
            return f"@{self.username}"
        return " ".join(part for part in (self.first_name, self.last_name) if part) or self.external_id
