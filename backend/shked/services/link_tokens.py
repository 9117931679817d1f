"""
One-time link tokens for binding a web account to a messenger identity.

Flow:
1. Authenticated web user calls GET /{platform}/link, gets a token (TTL 15 min).
2. User sends /link <token> to the bot.
3. The bot resolves the token, consumes it atomically and links the account.

A token is usable at most once and only before it expires. Consume is a
single conditional UPDATE so two concurrent redemptions cannot both win.
"""
from __future__ import annotations

import enum
import logging
import re
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from ..config import settings
from ..models import LinkToken, Platform

logger = logging.getLogger(__name__)

# secrets.token_hex(32)
TOKEN_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on read; all stored timestamps are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _normalize(token: str) -> str:
    return token.strip().lower()


def looks_like_token(text: str) -> bool:
    return bool(TOKEN_PATTERN.match(_normalize(text)))


class TokenState(str, enum.Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    CONSUMED = "consumed"
    VALID = "valid"


@dataclass(frozen=True)
class TokenStatus:
    state: TokenState
    user_id: UUID | None = None
    expires_at: datetime | None = None

    @property
    def is_valid(self) -> bool:
        return self.state is TokenState.VALID


class LinkTokenStore:
    """Issues, validates and consumes link tokens for one platform."""

    def __init__(
        self,
        db: Session,
        platform: Platform,
        *,
        ttl: timedelta | None = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.platform = Platform(platform)
        self.ttl = ttl or timedelta(minutes=settings.LINK_TOKEN_TTL_MINUTES)
        self._now = now

    def issue(self, user_id: UUID) -> LinkToken:
        """Create a fresh token; outstanding tokens of this account are dropped."""
        now = self._now()

        # Latest issued token is the only one that validates.
        self.db.query(LinkToken).filter(
            LinkToken.platform == self.platform.value,
            LinkToken.user_id == user_id,
            LinkToken.used_at == None,  # noqa: E711
        ).delete(synchronize_session=False)

        link_token = LinkToken(
            platform=self.platform.value,
            user_id=user_id,
            token=secrets.token_hex(32),
            expires_at=now + self.ttl,
        )
        self.db.add(link_token)
        self.db.commit()
        self.db.refresh(link_token)

        logger.info(
            f"✅ Issued {self.platform.value} link token for user {user_id}, "
            f"expires at {link_token.expires_at}"
        )
        return link_token

    def validate(self, user_id: UUID, token: str) -> bool:
        """True iff the token belongs to the account, is unexpired and unused."""
        found = self.db.query(LinkToken.id).filter(
            LinkToken.platform == self.platform.value,
            LinkToken.user_id == user_id,
            LinkToken.token == _normalize(token),
            LinkToken.used_at == None,  # noqa: E711
            LinkToken.expires_at > self._now(),
        ).first()
        return found is not None

    def consume(self, user_id: UUID, token: str) -> bool:
        """Mark a valid token used. Returns False if missing, expired or already used."""
        now = self._now()
        updated = self.db.query(LinkToken).filter(
            LinkToken.platform == self.platform.value,
            LinkToken.user_id == user_id,
            LinkToken.token == _normalize(token),
            LinkToken.used_at == None,  # noqa: E711
            LinkToken.expires_at > now,
        ).update({"used_at": now}, synchronize_session=False)
        self.db.commit()

        if updated != 1:
            logger.warning(f"❌ Link token not consumable: {token[:10]}...")
            return False
        return True

    def inspect(self, token: str) -> TokenStatus:
        """Classify a raw token value; only the bot side calls this, it knows no account."""
        link_token = self.db.query(LinkToken).filter(
            LinkToken.platform == self.platform.value,
            LinkToken.token == _normalize(token),
        ).first()

        if link_token is None:
            return TokenStatus(TokenState.NOT_FOUND)

        expires_at = as_utc(link_token.expires_at)
        if link_token.used_at is not None:
            state = TokenState.CONSUMED
        elif expires_at <= self._now():
            state = TokenState.EXPIRED
        else:
            state = TokenState.VALID
        return TokenStatus(state, user_id=link_token.user_id, expires_at=expires_at)

    def find_active(self, user_id: UUID, token: str) -> LinkToken | None:
        """Return the token row if it still validates (used by the web status endpoint)."""
        return self.db.query(LinkToken).filter(
            LinkToken.platform == self.platform.value,
            LinkToken.user_id == user_id,
            LinkToken.token == _normalize(token),
            LinkToken.used_at == None,  # noqa: E711
            LinkToken.expires_at > self._now(),
        ).first()
