"""Registry of messenger identities (Telegram / Max users that wrote to the bot)."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union
from uuid import UUID

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from ..domain_errors import AccountAlreadyLinked, AccountNotYetSeen
from ..models import MessengerAccount, Platform

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Unlinked:
    """Identity has written to the bot but is not bound to a web account."""


@dataclass(frozen=True)
class LinkedTo:
    user_id: UUID


Owner = Union[Unlinked, LinkedTo]


@dataclass(frozen=True)
class MessengerProfile:
    """Profile fields taken from the sender of an inbound update."""

    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None


def owner_of(account: MessengerAccount) -> Owner:
    if account.user_id is None:
        return Unlinked()
    return LinkedTo(account.user_id)


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Unsupported database dialect for upsert: {dialect}")


class MessengerAccountRegistry:
    """Maps (platform, external id) to an optional web-account owner."""

    def __init__(self, db: Session, platform: Platform):
        self.db = db
        self.platform = Platform(platform)

    def _query(self):
        return self.db.query(MessengerAccount).filter(MessengerAccount.platform == self.platform.value)

    def find_by_external_id(self, external_id: str) -> MessengerAccount | None:
        return self._query().filter(MessengerAccount.external_id == str(external_id)).first()

    def find_by_web_account(self, user_id: UUID) -> MessengerAccount | None:
        return self._query().filter(MessengerAccount.user_id == user_id).first()

    def upsert_profile(self, external_id: str, chat_id: str, profile: MessengerProfile) -> None:
        """Create the identity on first contact, otherwise refresh profile fields.

        Runs on every inbound message. The owner column is never written here.
        """
        insert = _insert_for(self.db)
        values = {
            "chat_id": str(chat_id),
            "username": profile.username,
            "first_name": profile.first_name,
            "last_name": profile.last_name,
            "is_active": True,
        }
        stmt = insert(MessengerAccount).values(
            platform=self.platform.value,
            external_id=str(external_id),
            notifications=True,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[MessengerAccount.platform, MessengerAccount.external_id],
            set_={**values, "updated_at": func.now()},
        )
        self.db.execute(stmt)
        self.db.commit()

    def link_account(self, external_id: str, user_id: UUID) -> MessengerAccount:
        """Bind an identity to a web account (SEEN_UNLINKED -> LINKED)."""
        account = self.find_by_external_id(external_id)
        if account is None:
            raise AccountNotYetSeen(details={"platform": self.platform.value})

        if account.user_id is not None:
            raise AccountAlreadyLinked(
                message="Messenger account already linked",
                details={"platform": self.platform.value, "sameUser": account.user_id == user_id},
            )

        other = self.find_by_web_account(user_id)
        if other is not None:
            raise AccountAlreadyLinked(
                code="WEB_ACCOUNT_ALREADY_LINKED",
                message="Web account already linked to another messenger account",
                details={"platform": self.platform.value},
            )

        # Conditional on the owner still being empty.
        updated = self._query().filter(
            MessengerAccount.id == account.id,
            MessengerAccount.user_id == None,  # noqa: E711
        ).update({"user_id": user_id}, synchronize_session=False)
        self.db.commit()

        if updated != 1:
            raise AccountAlreadyLinked(details={"platform": self.platform.value, "sameUser": False})

        self.db.refresh(account)
        logger.info(f"✅ Linked {self.platform.value} account {account.external_id} to user {user_id}")
        return account

    def unlink_account(self, external_id: str) -> bool:
        """Clear the owner (LINKED -> SEEN_UNLINKED). False if not linked."""
        updated = self._query().filter(
            MessengerAccount.external_id == str(external_id),
            MessengerAccount.user_id != None,  # noqa: E711
        ).update({"user_id": None}, synchronize_session=False)
        self.db.commit()
        if updated:
            logger.info(f"✅ Unlinked {self.platform.value} account {external_id}")
        return bool(updated)

    def unlink_web_account(self, user_id: UUID) -> bool:
        updated = self._query().filter(
            MessengerAccount.user_id == user_id,
        ).update({"user_id": None}, synchronize_session=False)
        self.db.commit()
        return bool(updated)

    def set_notifications(self, external_id: str, enabled: bool) -> bool:
        updated = self._query().filter(
            MessengerAccount.external_id == str(external_id),
        ).update({"notifications": enabled}, synchronize_session=False)
        self.db.commit()
        return bool(updated)

    def deactivate(self, account_id: UUID) -> None:
        """Recipient blocked the bot; stop sending until it writes again."""
        self._query().filter(MessengerAccount.id == account_id).update(
            {"is_active": False}, synchronize_session=False
        )
        self.db.commit()
