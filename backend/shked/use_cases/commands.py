"""
Bot command routing.

Inbound text is dispatched through a registry of named handlers, each a
callable taking a CommandContext and returning reply text. Routing never
raises: handler errors are logged and turned into a generic reply.

Per messenger identity the link state moves
    UNSEEN -> SEEN_UNLINKED   first inbound update (registry upsert)
    SEEN_UNLINKED -> LINKED   successful /link
    LINKED -> SEEN_UNLINKED   /unlink
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain_errors import AccountAlreadyLinked, AccountNotYetSeen
from ..models import MessengerAccount, Platform, User
from ..services import formatting
from ..services.academic import ScheduleReader, to_local
from ..services.link_tokens import LinkTokenStore, TokenState, looks_like_token, utcnow
from ..services.messenger_accounts import MessengerAccountRegistry

logger = logging.getLogger(__name__)

ERROR_REPLY = "⚠️ Произошла ошибка, попробуйте позже."

NOT_LINKED_REPLY = """❌ Ваш аккаунт не привязан к системе ШКЕД.
Используйте /link [токен] для привязки аккаунта."""

HOMEWORK_DUE_DAYS = 3


@dataclass(frozen=True)
class CommandContext:
    """One inbound message, parsed."""

    platform: Platform
    external_id: str
    chat_id: str
    text: str
    command: str | None = None
    args: list[str] = field(default_factory=list)


Handler = Callable[[CommandContext], str]


@dataclass(frozen=True)
class RegisteredCommand:
    name: str
    handler: Handler
    description: str
    usage: str


def parse_command(text: str) -> tuple[str | None, list[str]]:
    """Split '/cmd@bot a b' into ('cmd', ['a', 'b']); free text gives (None, words)."""
    stripped = text.strip()
    parts = stripped.split()
    if not stripped.startswith("/") or not parts:
        return None, parts

    name = parts[0][1:].split("@", 1)[0].lower()
    return name, parts[1:]


class CommandRouter:
    """Dispatches parsed messages to registered handlers."""

    def __init__(self, platform: Platform, *, session: Session | None = None):
        self.platform = Platform(platform)
        self._commands: dict[str, RegisteredCommand] = {}
        self._fallback: Handler | None = None
        self._session = session

    def register(self, name: str, handler: Handler, description: str = "", usage: str | None = None) -> None:
        self._commands[name] = RegisteredCommand(
            name, handler, description, usage or f"/{formatting.escape_markdown(name)}"
        )

    def set_fallback(self, handler: Handler) -> None:
        self._fallback = handler

    @property
    def commands(self) -> list[RegisteredCommand]:
        return list(self._commands.values())

    def route(
        self,
        external_id: str,
        chat_id: str,
        raw_text: str,
        args: list[str] | None = None,
    ) -> str:
        command, parsed_args = parse_command(raw_text)
        ctx = CommandContext(
            platform=self.platform,
            external_id=str(external_id),
            chat_id=str(chat_id),
            text=raw_text.strip(),
            command=command,
            args=parsed_args if args is None else args,
        )
        try:
            return self._dispatch(ctx)
        except Exception:
            logger.exception(f"❌ Command {ctx.command or '<text>'} failed for {ctx.platform.value}:{ctx.external_id}")
            self._rollback()
            return ERROR_REPLY

    def _dispatch(self, ctx: CommandContext) -> str:
        if ctx.command is None:
            if self._fallback is None:
                return self.help_text()
            return self._fallback(ctx)

        registered = self._commands.get(ctx.command)
        if registered is None:
            return f"🤔 Неизвестная команда /{formatting.escape_markdown(ctx.command)}.\n\n{self.help_text()}"
        return registered.handler(ctx)

    def _rollback(self) -> None:
        if self._session is None:
            return
        try:
            self._session.rollback()
        except SQLAlchemyError:
            logger.exception("❌ Rollback after command failure failed")

    def help_text(self) -> str:
        lines = ["📚 *Доступные команды:*", ""]
        lines.extend(f"{cmd.usage} - {cmd.description}" for cmd in self._commands.values() if cmd.description)
        lines.extend([
            "",
            "💬 *Естественный язык:*",
            "Можете писать обычными словами:",
            "• \"Когда моя следующая пара?\"",
            "• \"Что у меня завтра?\"",
            "• \"Покажи расписание на неделю\"",
            "• \"Какие домашки у меня есть?\"",
            "",
            "🤖 Бот понимает русский и английский языки.",
        ])
        return "\n".join(lines)


class BotCommands:
    """Built-in command handlers for one platform."""

    def __init__(
        self,
        db: Session,
        platform: Platform,
        *,
        tokens: LinkTokenStore | None = None,
        registry: MessengerAccountRegistry | None = None,
        reader: ScheduleReader | None = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.platform = Platform(platform)
        self.tokens = tokens or LinkTokenStore(db, self.platform, now=now)
        self.registry = registry or MessengerAccountRegistry(db, self.platform)
        self.reader = reader or ScheduleReader(db)
        self.now = now
        self.router: CommandRouter | None = None

    # -- helpers -----------------------------------------------------------

    def _account(self, ctx: CommandContext) -> MessengerAccount | None:
        return self.registry.find_by_external_id(ctx.external_id)

    def _linked_user(self, ctx: CommandContext) -> tuple[MessengerAccount, User] | None:
        account = self._account(ctx)
        if account is None or account.user_id is None:
            return None
        user = self.reader.get_user(account.user_id)
        if user is None:
            return None
        return account, user

    def _today(self) -> date:
        return to_local(self.now()).date()

    def _user_name(self, user_id: UUID) -> str:
        user = self.reader.get_user(user_id)
        return user.first_name or user.full_name if user else ""

    # -- commands ----------------------------------------------------------

    def start(self, ctx: CommandContext) -> str:
        linked = self._linked_user(ctx)
        if linked is not None:
            _, user = linked
            return f"""Привет, {formatting.escape_markdown(user.first_name or user.full_name)}! 👋

Вы уже подключены к системе ШКЕД.
Используйте /help для просмотра доступных команд."""

        return """Добро пожаловать в ШКЕД! 🎓

Для подключения аккаунта к системе:
1. Войдите в веб-приложение ШКЕД
2. Перейдите в профиль
3. Получите токен привязки
4. Отправьте команду /link [токен]

Используйте /help для просмотра всех команд."""

    def link(self, ctx: CommandContext) -> str:
        if not ctx.args:
            return """Для привязки аккаунта используйте:
/link [токен]

Получить токен можно в веб-приложении ШКЕД в разделе профиля."""

        token = ctx.args[0]
        status = self.tokens.inspect(token)
        if status.state is TokenState.NOT_FOUND:
            return """❌ Токен привязки не найден.
Проверьте, что токен скопирован полностью, или получите новый в веб-приложении ШКЕД."""
        if status.state is TokenState.EXPIRED:
            minutes = int(self.tokens.ttl.total_seconds() // 60)
            return f"""⌛ Срок действия токена истёк (действует {minutes} минут).
Получите новый токен в веб-приложении ШКЕД."""
        if status.state is TokenState.CONSUMED:
            return """❌ Токен недействителен: он уже был использован.
Получите новый токен в веб-приложении ШКЕД."""

        account = self._account(ctx)
        if account is None:
            return """❌ Бот ещё не знает ваш аккаунт.
Отправьте /start, а затем повторите /link [токен]."""
        if account.user_id is not None:
            if account.user_id == status.user_id:
                return "✅ Ваш аккаунт уже привязан к системе ШКЕД."
            return """❌ Этот аккаунт уже привязан к другому пользователю ШКЕД.
Сначала отвяжите его командой /unlink."""
        if self.registry.find_by_web_account(status.user_id) is not None:
            return """❌ К вашему профилю ШКЕД уже привязан другой аккаунт.
Отвяжите его в веб-приложении и повторите попытку."""

        if not self.tokens.consume(status.user_id, token):
            return """❌ Токен недействителен: он уже был использован или истёк.
Получите новый токен в веб-приложении ШКЕД."""

        try:
            self.registry.link_account(ctx.external_id, status.user_id)
        except AccountNotYetSeen:
            return """❌ Бот ещё не знает ваш аккаунт.
Отправьте /start, а затем повторите /link [токен]."""
        except AccountAlreadyLinked:
            return "❌ Этот аккаунт уже привязан к системе ШКЕД."

        name = self._user_name(status.user_id)
        greeting = f", {formatting.escape_markdown(name)}" if name else ""
        return f"""✅ Аккаунт успешно привязан к системе ШКЕД{greeting}!
Теперь вы будете получать уведомления о расписании.

Используйте /help для просмотра доступных команд."""

    def unlink(self, ctx: CommandContext) -> str:
        if not self.registry.unlink_account(ctx.external_id):
            return "ℹ️ Ваш аккаунт не привязан к системе ШКЕД."
        return """✅ Аккаунт отвязан от системы ШКЕД.
Уведомления больше приходить не будут. Для повторной привязки используйте /link [токен]."""

    def help(self, ctx: CommandContext) -> str:
        if self.router is None:
            return ""
        return self.router.help_text()

    def schedule(self, ctx: CommandContext) -> str:
        linked = self._linked_user(ctx)
        if linked is None:
            return NOT_LINKED_REPLY
        _, user = linked
        classes = self.reader.schedule_for_day(user, self._today())
        return formatting.format_schedule(classes, "Расписание на сегодня", "📅 На сегодня занятий нет.")

    def tomorrow(self, ctx: CommandContext) -> str:
        linked = self._linked_user(ctx)
        if linked is None:
            return NOT_LINKED_REPLY
        _, user = linked
        classes = self.reader.schedule_for_day(user, self._today() + timedelta(days=1))
        return formatting.format_schedule(classes, "Расписание на завтра", "📅 На завтра занятий нет.")

    def week(self, ctx: CommandContext) -> str:
        linked = self._linked_user(ctx)
        if linked is None:
            return NOT_LINKED_REPLY
        _, user = linked
        return formatting.format_week(self.reader.schedule_for_week(user, self._today()))

    def next_class(self, ctx: CommandContext) -> str:
        linked = self._linked_user(ctx)
        if linked is None:
            return NOT_LINKED_REPLY
        _, user = linked
        return formatting.format_next_class(self.reader.next_class(user, self.now()))

    def homework(self, ctx: CommandContext) -> str:
        linked = self._linked_user(ctx)
        if linked is None:
            return NOT_LINKED_REPLY
        _, user = linked
        now = self.now()
        items = self.reader.active_homework(user, now)
        if not items:
            return "📝 *Домашние задания*\n\nНа данный момент у вас нет активных домашних заданий."
        return formatting.format_homework_list(items, now, title="Ваши домашние задания")

    def homework_due(self, ctx: CommandContext) -> str:
        linked = self._linked_user(ctx)
        if linked is None:
            return NOT_LINKED_REPLY
        _, user = linked
        now = self.now()
        items = self.reader.active_homework(user, now, until=now + timedelta(days=HOMEWORK_DUE_DAYS))
        if not items:
            return f"📝 *Ближайшие дедлайны*\n\nВ ближайшие {HOMEWORK_DUE_DAYS} дня у вас нет дедлайнов."
        return formatting.format_homework_list(
            items, now, title=f"Ближайшие дедлайны ({HOMEWORK_DUE_DAYS} дня)", show_hours_left=True
        )

    def settings(self, ctx: CommandContext) -> str:
        linked = self._linked_user(ctx)
        if linked is None:
            return NOT_LINKED_REPLY
        account, user = linked
        group_name = formatting.escape_markdown(user.group.name) if user.group else "не указана"
        return f"""⚙️ *Настройки уведомлений*

🔔 Уведомления: {'Включены' if account.notifications else 'Отключены'}
📱 ID: {formatting.escape_markdown(account.external_id)}
👤 Пользователь: {formatting.escape_markdown(user.full_name)}
🎓 Группа: {group_name}

Изменить: /notifications on | off"""

    def notifications(self, ctx: CommandContext) -> str:
        linked = self._linked_user(ctx)
        if linked is None:
            return NOT_LINKED_REPLY
        choice = ctx.args[0].lower() if ctx.args else ""
        if choice not in ("on", "off", "вкл", "выкл"):
            return "Используйте /notifications on или /notifications off"
        enabled = choice in ("on", "вкл")
        self.registry.set_notifications(ctx.external_id, enabled)
        return "🔔 Уведомления включены." if enabled else "🔕 Уведомления отключены."

    def natural_language(self, ctx: CommandContext) -> str:
        """Best-effort intent matching for free text."""
        text = ctx.text
        if looks_like_token(text):
            return self.link(replace(ctx, command="link", args=[text]))

        if self._linked_user(ctx) is None:
            return NOT_LINKED_REPLY

        lowered = text.lower()
        if any(word in lowered for word in ("дедлайн", "deadline", "сдавать")):
            return self.homework_due(ctx)
        if any(word in lowered for word in ("домашк", "дз", "homework")):
            return self.homework(ctx)
        if "недел" in lowered or "week" in lowered:
            return self.week(ctx)
        if "следующ" in lowered or "next" in lowered:
            return self.next_class(ctx)
        if "завтра" in lowered or "tomorrow" in lowered:
            return self.tomorrow(ctx)
        if any(word in lowered for word in ("расписан", "пара", "пары", "занят", "schedule", "сегодня", "today")):
            return self.schedule(ctx)

        day = formatting.parse_russian_date(text, self._today())
        if day is not None:
            linked = self._linked_user(ctx)
            classes = self.reader.schedule_for_day(linked[1], day)
            return formatting.format_schedule(classes, f"Расписание на {day.strftime('%d.%m.%Y')}")

        return self.help(ctx)


def build_command_router(
    db: Session,
    platform: Platform,
    *,
    now: Callable[[], datetime] = utcnow,
) -> CommandRouter:
    """Router with all built-in commands registered."""
    commands = BotCommands(db, platform, now=now)
    router = CommandRouter(platform, session=db)
    commands.router = router

    router.register("start", commands.start, "Приветствие и инструкции")
    router.register("link", commands.link, "Привязка аккаунта к системе", "/link [токен]")
    router.register("unlink", commands.unlink, "Отвязать аккаунт")
    router.register("schedule", commands.schedule, "Расписание на сегодня")
    router.register("tomorrow", commands.tomorrow, "Расписание на завтра")
    router.register("week", commands.week, "Расписание на неделю")
    router.register("next", commands.next_class, "Следующее занятие")
    router.register("homework", commands.homework, "Мои домашние задания")
    router.register("homework_due", commands.homework_due, "Ближайшие дедлайны")
    router.register("settings", commands.settings, "Настройки уведомлений")
    router.register("notifications", commands.notifications, "Включить/выключить уведомления", "/notifications on|off")
    router.register("help", commands.help, "Эта справка")
    router.set_fallback(commands.natural_language)
    return router
