"""
Routes shared by the Telegram and Max bridges.

Both platforms expose the same surface under their own prefix:
- webhook for bot updates
- link token issue / check / unlink for the signed-in web user
- admin send, bot config and notification stats
"""
import hmac
import json
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..auth import PermissionChecker
from ..config import settings
from ..database import get_db
from ..domain_errors import BotNotConfigured, DomainError, TokenAlreadyConsumed, TokenExpired, TokenNotFound
from ..models import Platform, User
from ..schemas import (
    BotConfigResponse,
    LinkCheckRequest,
    LinkStatusResponse,
    LinkTokenResponse,
    MessengerAccountInfo,
    NotificationStatsResponse,
    SendRequest,
    SendResponse,
    UnlinkResponse,
    WebhookSetupResponse,
)
from ..services.bot_clients import BotClient, build_bot_client
from ..services.link_tokens import LinkTokenStore, TokenState, utcnow
from ..services.messenger_accounts import MessengerAccountRegistry
from ..use_cases.broadcast import NotificationBroadcaster, notification_stats
from ..use_cases.commands import build_command_router
from ..use_cases.webhook_ingest import WebhookIngestHandler

logger = logging.getLogger(__name__)

PLATFORM_TITLES = {
    Platform.TELEGRAM: "Telegram",
    Platform.MAX: "Max",
}

_TOKEN_ERRORS = {
    TokenState.NOT_FOUND: TokenNotFound,
    TokenState.EXPIRED: TokenExpired,
    TokenState.CONSUMED: TokenAlreadyConsumed,
}


def get_telegram_client() -> BotClient:
    return build_bot_client(Platform.TELEGRAM)


def get_max_client() -> BotClient:
    return build_bot_client(Platform.MAX)


def get_clock() -> Callable[[], datetime]:
    """Time source for token expiry and schedule lookups."""
    return utcnow


def webhook_url(platform: Platform) -> str:
    return f"{settings.API_BASE_URL.rstrip('/')}/api/v1/{Platform(platform).value}/webhook"


def create_messenger_router(
    platform: Platform,
    *,
    client_dependency: Callable[[], BotClient],
    secret_header: str,
    secret_setting: str,
) -> APIRouter:
    """Build the APIRouter for one messenger platform."""
    platform = Platform(platform)
    title = PLATFORM_TITLES[platform]
    router = APIRouter(prefix=f"/{platform.value}", tags=[platform.value])

    @router.post("/webhook")
    async def webhook(
        request: Request,
        db: Session = Depends(get_db),
        client: BotClient = Depends(client_dependency),
        clock: Callable[[], datetime] = Depends(get_clock),
    ):
        """
        Bot update handler.

        Must respond 200 quickly (platforms retry on non-2xx). Only a body
        that is not an update at all is answered with 500.
        """
        expected_secret = getattr(settings, secret_setting)
        if expected_secret:
            received = request.headers.get(secret_header, "")
            if not hmac.compare_digest(received, expected_secret):
                logger.warning(f"❌ Invalid {title} webhook secret from {request.client.host if request.client else '?'}")
                return {"ok": False}

        try:
            payload: Any = json.loads(await request.body())
        except ValueError:
            logger.error(f"❌ {title} webhook body is not JSON")
            return JSONResponse(status_code=500, content={"error": "Invalid JSON body"})

        handler = WebhookIngestHandler(platform, db, client, build_command_router(db, platform, now=clock))
        try:
            await run_in_threadpool(handler.handle, payload)
        except DomainError as e:
            logger.error(f"❌ {title} webhook payload rejected: {e}")
            return JSONResponse(status_code=e.http_status, content={"error": e.message})
        return {"ok": True}

    @router.get("/link", response_model=LinkTokenResponse)
    def issue_link_token(
        current_user: User = Depends(PermissionChecker("canLinkMessenger")),
        db: Session = Depends(get_db),
        clock: Callable[[], datetime] = Depends(get_clock),
    ):
        """Issue a one-time token the user sends to the bot as /link <token>."""
        store = LinkTokenStore(db, platform, now=clock)
        link_token = store.issue(current_user.id)
        return LinkTokenResponse(
            token=link_token.token,
            expiresIn=int(store.ttl.total_seconds() // 60),
            instructions=[
                f"1. Откройте {title} бота",
                "2. Отправьте команду /link",
                "3. Введите полученный токен",
                "4. Ваш аккаунт будет привязан",
            ],
        )

    @router.post("/link", response_model=LinkStatusResponse)
    def check_link_token(
        payload: LinkCheckRequest,
        current_user: User = Depends(PermissionChecker("canLinkMessenger")),
        db: Session = Depends(get_db),
        clock: Callable[[], datetime] = Depends(get_clock),
    ):
        """Check a token without consuming it and report the link status."""
        store = LinkTokenStore(db, platform, now=clock)
        active = store.find_active(current_user.id, payload.token)
        if active is None:
            status = store.inspect(payload.token)
            if status.user_id != current_user.id:
                raise TokenNotFound(details={"platform": platform.value})
            raise _TOKEN_ERRORS.get(status.state, TokenNotFound)(details={"platform": platform.value})

        account = MessengerAccountRegistry(db, platform).find_by_web_account(current_user.id)
        if account is not None:
            return LinkStatusResponse(
                message=f"{title} аккаунт уже привязан",
                linked=True,
                account=MessengerAccountInfo.from_account(account),
            )

        return LinkStatusResponse(
            message=f"Токен действителен. Отправьте команду /link [токен] в {title} боте для завершения привязки.",
            linked=False,
            token=active.token,
            expiresAt=active.expires_at,
        )

    @router.delete("/link", response_model=UnlinkResponse)
    def unlink(
        current_user: User = Depends(PermissionChecker("canLinkMessenger")),
        db: Session = Depends(get_db),
    ):
        """Unlink the messenger account owned by the current user."""
        unlinked = MessengerAccountRegistry(db, platform).unlink_web_account(current_user.id)
        if unlinked:
            logger.info(f"✅ Unlinked {title} for user {current_user.id}")
            return UnlinkResponse(ok=True, message=f"{title} unlinked")
        return UnlinkResponse(ok=False, message=f"{title} account is not linked")

    @router.post("/send", response_model=SendResponse)
    def send(
        payload: SendRequest,
        current_user: User = Depends(PermissionChecker("canBroadcast")),
        db: Session = Depends(get_db),
        client: BotClient = Depends(client_dependency),
    ):
        """Admin: test message or broadcast to everyone / a role / a group."""
        broadcaster = NotificationBroadcaster(db, platform, client)

        if payload.type == "test":
            if payload.testUserId is None:
                raise HTTPException(status_code=400, detail="ID пользователя для теста не указан")
            ok = broadcaster.send_test_message(payload.testUserId)
            return SendResponse(success=ok, message="Тестовое сообщение отправлено" if ok else "Ошибка отправки")

        if payload.type == "broadcast_all":
            result = broadcaster.broadcast_to_all(payload.message, payload.targetRole)
            suffix = "пользователей"
        elif payload.type == "broadcast_group":
            if payload.targetGroup is None:
                raise HTTPException(status_code=400, detail="Группа не указана")
            result = broadcaster.broadcast_to_group(payload.targetGroup, payload.message)
            suffix = "пользователей группы"
        else:
            return SendResponse(success=False, message="Кастомная отправка пока не реализована")

        logger.info(f"📣 {current_user.email} sent {payload.type} via {title}: {result.sent}/{result.total}")
        return SendResponse(
            success=result.sent > 0,
            sent=result.sent,
            total=result.total,
            failed=result.failed,
            skipped=result.skipped,
            message=f"Отправлено {result.sent} из {result.total} {suffix}",
        )

    @router.get("/config", response_model=BotConfigResponse)
    def get_config(
        current_user: User = Depends(PermissionChecker("canManageBots")),
        client: BotClient = Depends(client_dependency),
    ):
        """Bot and webhook info (no secrets)."""
        configured = client.is_configured
        return BotConfigResponse(
            platform=platform.value,
            configured=configured,
            webhookUrl=webhook_url(platform),
            webhookSecretConfigured=bool(getattr(settings, secret_setting)),
            reminderMinutes=settings.REMINDER_MINUTES,
            dailySummaryHour=settings.DAILY_SUMMARY_HOUR,
            botInfo=client.get_me() if configured else None,
            webhookInfo=client.get_webhook_info() if configured else None,
        )

    @router.post("/config/webhook", response_model=WebhookSetupResponse)
    def setup_webhook(
        current_user: User = Depends(PermissionChecker("canManageBots")),
        client: BotClient = Depends(client_dependency),
    ):
        """Register this backend's webhook URL with the platform."""
        if not client.is_configured:
            raise BotNotConfigured(details={"platform": platform.value})

        url = webhook_url(platform)
        ok = client.set_webhook(url, getattr(settings, secret_setting))
        if ok:
            logger.info(f"✅ {title} webhook set to {url} by {current_user.email}")
        return WebhookSetupResponse(ok=ok, webhookUrl=url)

    @router.get("/stats", response_model=NotificationStatsResponse)
    def stats(
        current_user: User = Depends(PermissionChecker("canViewBotStats")),
        db: Session = Depends(get_db),
        clock: Callable[[], datetime] = Depends(get_clock),
    ):
        return NotificationStatsResponse(**notification_stats(db, platform, clock()))

    return router
