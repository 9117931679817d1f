"""
Best-effort notification fan-out to linked messenger accounts.

Every recipient is attempted in isolation: one bad chat id, a blocked bot or
a rate-limit response is counted as a failure and the loop moves on. `total`
counts exactly the recipients attempted; recipients left when the batch
budget runs out are reported as `skipped`.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session, contains_eager

from ..config import settings
from ..domain_errors import DeliveryFailure
from ..models import MessengerAccount, Platform, User
from ..services.bot_clients import BotClient
from ..services.formatting import escape_markdown, format_deadline
from ..services.link_tokens import utcnow
from ..services.messenger_accounts import MessengerAccountRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BroadcastResult:
    sent: int
    total: int
    skipped: int = 0

    @property
    def failed(self) -> int:
        return self.total - self.sent


class NotificationBroadcaster:
    """Sends messages through one platform's bot client."""

    def __init__(
        self,
        db: Session,
        platform: Platform,
        client: BotClient,
        *,
        batch_budget_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.client = client
        self.platform = Platform(platform)
        self.registry = MessengerAccountRegistry(db, self.platform)
        self.batch_budget_seconds = (
            settings.BROADCAST_BATCH_BUDGET_SECONDS if batch_budget_seconds is None else batch_budget_seconds
        )
        self._clock = clock

    def _recipients_query(self):
        """Linked, active, opted-in accounts joined to their owner."""
        return self.db.query(MessengerAccount).join(User, MessengerAccount.user_id == User.id).filter(
            MessengerAccount.platform == self.platform.value,
            MessengerAccount.is_active == True,  # noqa: E712
            MessengerAccount.notifications == True,  # noqa: E712
            User.is_active == True,  # noqa: E712
        )

    def recipients(self, role: str | None = None) -> list[MessengerAccount]:
        """Accounts a broadcast would reach, owners eagerly loaded."""
        query = self._recipients_query().options(contains_eager(MessengerAccount.user))
        if role:
            query = query.filter(User.role == role)
        return query.all()

    def _deliver(self, account: MessengerAccount, message: str) -> None:
        ok, error = self.client.send_message(account.chat_id, message, parse_mode="Markdown")
        if ok:
            return
        if error == "BOT_BLOCKED":
            # User blocked the bot; keep the link but stop sending.
            self.registry.deactivate(account.id)
            logger.warning(f"🚫 {self.platform.value} account {account.external_id} blocked the bot, deactivated")
        raise DeliveryFailure(message=error or "unknown error", details={"chatId": account.chat_id})

    def _fan_out(self, accounts: list[MessengerAccount], message: str, label: str) -> BroadcastResult:
        deadline = self._clock() + self.batch_budget_seconds
        sent = 0
        attempted = 0
        for account in accounts:
            if self._clock() > deadline:
                break
            attempted += 1
            try:
                self._deliver(account, message)
                sent += 1
            except DeliveryFailure as e:
                logger.warning(f"⚠️ Delivery to {self.platform.value}:{account.external_id} failed: {e}")
            except Exception:
                logger.exception(f"❌ Unexpected delivery error for {self.platform.value}:{account.external_id}")

        skipped = len(accounts) - attempted
        if skipped:
            logger.warning(f"⏳ Broadcast budget exhausted, {skipped} recipients skipped ({label})")
        logger.info(f"📨 {label}: sent {sent}/{attempted} via {self.platform.value}")
        return BroadcastResult(sent=sent, total=attempted, skipped=skipped)

    def send_to_one(
        self,
        message: str,
        *,
        user_id: UUID | None = None,
        external_id: str | None = None,
        respect_opt_out: bool = True,
    ) -> bool:
        """Deliver to a single web account or messenger identity."""
        if user_id is not None:
            account = self.registry.find_by_web_account(user_id)
        elif external_id is not None:
            account = self.registry.find_by_external_id(external_id)
        else:
            raise ValueError("user_id or external_id is required")

        if account is None or not account.is_active:
            return False
        if respect_opt_out and not account.notifications:
            return False
        try:
            self._deliver(account, message)
        except DeliveryFailure as e:
            logger.warning(f"⚠️ Delivery to {self.platform.value}:{account.external_id} failed: {e}")
            return False
        return True

    def broadcast_to_all(self, message: str, role: str | None = None) -> BroadcastResult:
        return self._fan_out(self.recipients(role), message, f"broadcast_all role={role or '*'}")

    def broadcast_to_group(self, group_id: UUID, message: str) -> BroadcastResult:
        accounts = self._recipients_query().filter(User.group_id == group_id).all()
        return self._fan_out(accounts, message, f"broadcast_group {group_id}")

    def send_test_message(self, user_id: UUID) -> bool:
        now = utcnow().strftime("%d.%m.%Y %H:%M UTC")
        message = f"""🧪 *Тестовое сообщение*

Это тестовое сообщение от системы ШКЕД.
Если вы получили это сообщение, значит уведомления работают корректно! ✅

Время: {now}"""
        return self.send_to_one(message, user_id=user_id, respect_opt_out=False)

    # -- event notifications ----------------------------------------------

    def notify_schedule_change(self, schedule) -> BroadcastResult:
        message = f"""📢 *Изменение в расписании*

📚 *{escape_markdown(schedule.subject.name)}*
📅 {schedule.date.strftime('%d.%m.%Y')}
⏰ {schedule.start_time} - {schedule.end_time}
📍 {escape_markdown(schedule.location or 'Аудитория не указана')}
👨‍🏫 {escape_markdown(schedule.subject.instructor or 'Преподаватель не указан')}

Пожалуйста, обратите внимание на изменения!"""
        return self.broadcast_to_group(schedule.group_id, message)

    def notify_new_homework(self, homework) -> BroadcastResult:
        lines = [
            "📝 *Новое домашнее задание*",
            "",
            f"📚 *{escape_markdown(homework.title)}*",
            f"📖 {escape_markdown(homework.subject.name)}",
            f"⏰ Дедлайн: {format_deadline(homework.deadline)}",
        ]
        if homework.description:
            lines.extend(["", f"📝 {escape_markdown(homework.description)}"])
        if homework.task_url:
            lines.extend(["", f"🔗 [Открыть задание]({homework.task_url})"])
        lines.extend(["", "Удачи в выполнении! 🎓"])
        return self.broadcast_to_group(homework.group_id, "\n".join(lines))

    def notify_homework_reviewed(self, homework, submission) -> bool:
        lines = [
            "📝 *Домашнее задание проверено*",
            "",
            f"📚 *{escape_markdown(homework.title)}*",
            f"📖 {escape_markdown(homework.subject.name)}",
            f"🎯 Оценка: {submission.grade}/5",
        ]
        if submission.comment:
            lines.extend(["", "💬 Комментарий преподавателя:", escape_markdown(submission.comment)])
        return self.send_to_one("\n".join(lines), user_id=submission.user_id)


def notification_stats(db: Session, platform: Platform, now: datetime | None = None) -> dict[str, int]:
    """Counters for the admin stats endpoint."""
    now = now or utcnow()
    base = db.query(func.count(MessengerAccount.id)).filter(MessengerAccount.platform == Platform(platform).value)
    return {
        "totalUsers": base.scalar() or 0,
        "activeUsers": base.filter(MessengerAccount.is_active == True).scalar() or 0,  # noqa: E712
        "notificationsEnabled": base.filter(MessengerAccount.notifications == True).scalar() or 0,  # noqa: E712
        "linkedUsers": base.filter(MessengerAccount.user_id != None).scalar() or 0,  # noqa: E711
        "recentActivity": base.filter(MessengerAccount.created_at >= now - timedelta(days=7)).scalar() or 0,
    }
