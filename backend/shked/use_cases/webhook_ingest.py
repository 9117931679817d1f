"""
Webhook ingestion: platform payload -> registry upsert -> command routing -> reply.

Only payloads that do not match the update shape are reported to the caller
(as MalformedWebhookPayload). Everything after parsing is best-effort: the
platform retries on non-2xx, so internal failures are logged and swallowed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..domain_errors import MalformedWebhookPayload
from ..models import Platform
from ..schemas import MaxUpdate, TelegramUpdate
from ..services.bot_clients import BotClient
from ..services.messenger_accounts import MessengerAccountRegistry, MessengerProfile
from .commands import CommandRouter

logger = logging.getLogger(__name__)

_UPDATE_MODELS = {
    Platform.TELEGRAM: TelegramUpdate,
    Platform.MAX: MaxUpdate,
}


@dataclass(frozen=True)
class NormalizedUpdate:
    """Platform-neutral view of one inbound update."""

    kind: Literal["message", "callback", "ignored"]
    external_id: str | None = None
    chat_id: str | None = None
    profile: MessengerProfile | None = None
    text: str | None = None
    callback_id: str | None = None
    callback_data: str | None = None


def _profile(sender) -> MessengerProfile:
    return MessengerProfile(
        first_name=sender.first_name,
        last_name=sender.last_name,
        username=sender.username,
    )


def normalize_update(platform: Platform, payload: Any) -> NormalizedUpdate:
    """Validate a raw payload and reduce it to a NormalizedUpdate."""
    model = _UPDATE_MODELS[Platform(platform)]
    if not isinstance(payload, dict):
        raise MalformedWebhookPayload(details={"platform": Platform(platform).value})
    try:
        update = model.model_validate(payload)
    except ValidationError as e:
        raise MalformedWebhookPayload(
            details={"platform": Platform(platform).value, "errors": e.error_count()}
        ) from e

    message = update.message
    if message is not None:
        # Channel posts and service messages come without a sender.
        if message.from_ is None or not message.text:
            return NormalizedUpdate(kind="ignored")
        return NormalizedUpdate(
            kind="message",
            external_id=str(message.from_.id),
            chat_id=str(message.chat.id),
            profile=_profile(message.from_),
            text=message.text,
        )

    callback = update.callback_query
    if callback is not None:
        chat_id = str(callback.message.chat.id) if callback.message else str(callback.from_.id)
        return NormalizedUpdate(
            kind="callback",
            external_id=str(callback.from_.id),
            chat_id=chat_id,
            profile=_profile(callback.from_),
            callback_id=callback.id,
            callback_data=callback.data,
        )

    return NormalizedUpdate(kind="ignored")


class WebhookIngestHandler:
    """Handles inbound updates for one platform."""

    def __init__(self, platform: Platform, db: Session, client: BotClient, router: CommandRouter):
        self.platform = Platform(platform)
        self.db = db
        self.client = client
        self.router = router
        self.registry = MessengerAccountRegistry(db, self.platform)

    def handle(self, payload: Any) -> NormalizedUpdate:
        update = normalize_update(self.platform, payload)
        if update.kind == "ignored":
            return update

        try:
            if update.kind == "message":
                self._handle_message(update)
            else:
                self._handle_callback(update)
        except Exception:
            logger.exception(f"❌ {self.platform.value} webhook processing failed")
            self.db.rollback()
        return update

    def _handle_message(self, update: NormalizedUpdate) -> None:
        self.registry.upsert_profile(update.external_id, update.chat_id, update.profile)

        reply = self.router.route(update.external_id, update.chat_id, update.text)
        if not reply:
            return

        # The registry stays updated even when the reply cannot be delivered.
        ok, error = self.client.send_message(update.chat_id, reply, parse_mode="Markdown")
        if not ok:
            logger.warning(f"⚠️ {self.platform.value} reply to chat {update.chat_id} failed: {error}")

    def _handle_callback(self, update: NormalizedUpdate) -> None:
        self.registry.upsert_profile(update.external_id, update.chat_id, update.profile)

        if self.client.supports_callback_answers:
            self.client.answer_callback_query(update.callback_id)
        logger.info(f"🔘 {self.platform.value} callback from {update.external_id}: {update.callback_data}")
