"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class TokenNotFound(DomainError):
    code: str = "LINK_TOKEN_NOT_FOUND"
    http_status: int = 400
    message: str = "Link token not found"


@dataclass(eq=False)
class TokenExpired(DomainError):
    code: str = "LINK_TOKEN_EXPIRED"
    http_status: int = 400
    message: str = "Link token expired"


@dataclass(eq=False)
class TokenAlreadyConsumed(DomainError):
    code: str = "LINK_TOKEN_CONSUMED"
    http_status: int = 400
    message: str = "Link token already used"


@dataclass(eq=False)
class AccountAlreadyLinked(DomainError):
    code: str = "MESSENGER_ALREADY_LINKED"
    http_status: int = 409
    message: str = "Messenger account already linked"


@dataclass(eq=False)
class AccountNotYetSeen(DomainError):
    """Linking attempted for an identity that never wrote to the bot."""

    code: str = "MESSENGER_NOT_SEEN"
    http_status: int = 404
    message: str = "Messenger account has not contacted the bot yet"


@dataclass(eq=False)
class DeliveryFailure(DomainError):
    """Outbound message to one recipient failed; caught per recipient."""

    code: str = "DELIVERY_FAILED"
    http_status: int = 502
    message: str = "Message delivery failed"


@dataclass(eq=False)
class MalformedWebhookPayload(DomainError):
    code: str = "MALFORMED_WEBHOOK_PAYLOAD"
    http_status: int = 500
    message: str = "Malformed webhook payload"


@dataclass(eq=False)
class BotNotConfigured(DomainError):
    code: str = "BOT_NOT_CONFIGURED"
    http_status: int = 503
    message: str = "Bot token is not configured"
