"""Pydantic schemas for API and inbound webhook payloads."""
from pydantic import BaseModel, Field, ConfigDict
from typing import Literal, Optional
from datetime import datetime
from uuid import UUID


# Webhook payloads
class MessengerSender(BaseModel):
    """`from` block of a message or callback."""
    id: int | str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None


class MessengerChat(BaseModel):
    id: int | str
    type: Optional[str] = None


class CallbackMessage(BaseModel):
    message_id: int | str
    chat: MessengerChat


class TelegramMessage(BaseModel):
    message_id: int
    from_: Optional[MessengerSender] = Field(default=None, alias="from")
    chat: MessengerChat
    date: Optional[int] = None
    text: Optional[str] = None


class TelegramCallbackQuery(BaseModel):
    id: str
    from_: MessengerSender = Field(alias="from")
    message: Optional[CallbackMessage] = None
    data: Optional[str] = None


class TelegramUpdate(BaseModel):
    """Subset of the Telegram Update object the bot reacts to."""
    update_id: int
    message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None


class MaxMessage(BaseModel):
    message_id: str
    from_: MessengerSender = Field(alias="from")
    chat: MessengerChat
    date: Optional[int] = None
    text: Optional[str] = None


class MaxCallbackQuery(BaseModel):
    id: str
    from_: MessengerSender = Field(alias="from")
    message: Optional[CallbackMessage] = None
    data: Optional[str] = None


class MaxUpdate(BaseModel):
    """Max update in the Telegram-like shape (string identifiers)."""
    update_id: int
    message: Optional[MaxMessage] = None
    callback_query: Optional[MaxCallbackQuery] = None


# Auth schemas
class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    group_id: Optional[UUID] = None
    permissions: dict[str, bool] = Field(default_factory=dict)


# Linking schemas
class LinkTokenResponse(BaseModel):
    """Freshly issued link token (GET /{platform}/link)."""
    token: str
    expiresIn: int
    instructions: list[str]


class LinkCheckRequest(BaseModel):
    token: str = Field(min_length=1)


class MessengerAccountInfo(BaseModel):
    externalId: str
    username: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    isActive: bool
    notifications: bool
    createdAt: Optional[datetime] = None

    @classmethod
    def from_account(cls, account) -> "MessengerAccountInfo":
        return cls(
            externalId=account.external_id,
            username=account.username,
            firstName=account.first_name,
            lastName=account.last_name,
            isActive=account.is_active,
            notifications=account.notifications,
            createdAt=account.created_at,
        )


class LinkStatusResponse(BaseModel):
    """Result of POST /{platform}/link: already linked, or token still valid."""
    message: str
    linked: bool
    account: Optional[MessengerAccountInfo] = None
    token: Optional[str] = None
    expiresAt: Optional[datetime] = None


class UnlinkResponse(BaseModel):
    ok: bool
    message: str


# Admin schemas
class SendRequest(BaseModel):
    type: Literal["test", "broadcast_all", "broadcast_group", "custom"]
    message: str = Field(min_length=1)
    targetGroup: Optional[UUID] = None
    targetRole: Optional[str] = None
    testUserId: Optional[UUID] = None


class SendResponse(BaseModel):
    success: bool
    message: str
    sent: Optional[int] = None
    total: Optional[int] = None
    failed: Optional[int] = None
    skipped: Optional[int] = None


class WebhookSetupResponse(BaseModel):
    ok: bool
    webhookUrl: str


class BotConfigResponse(BaseModel):
    platform: str
    configured: bool
    webhookUrl: str
    webhookSecretConfigured: bool
    reminderMinutes: int
    dailySummaryHour: int
    botInfo: Optional[dict] = None
    webhookInfo: Optional[dict] = None


class NotificationStatsResponse(BaseModel):
    totalUsers: int
    activeUsers: int
    notificationsEnabled: int
    linkedUsers: int
    recentActivity: int
    model_config = ConfigDict(from_attributes=True)
