from __future__ import annotations

import pytest

from shked.domain_errors import AccountAlreadyLinked, AccountNotYetSeen
from shked.models import MessengerAccount, Platform
from shked.services.messenger_accounts import (
    LinkedTo,
    MessengerAccountRegistry,
    MessengerProfile,
    Unlinked,
    owner_of,
)


def test_first_contact_creates_unlinked_account_with_notifications(db) -> None:
    registry = MessengerAccountRegistry(db, Platform.TELEGRAM)

    registry.upsert_profile("100", "100", MessengerProfile(first_name="Иван", username="ivan"))

    account = registry.find_by_external_id("100")
    assert account is not None
    assert owner_of(account) == Unlinked()
    assert account.notifications is True
    assert account.is_active is True
    assert account.display_name == "@ivan"


def test_upsert_refreshes_profile_and_keeps_single_row(db) -> None:
    registry = MessengerAccountRegistry(db, Platform.TELEGRAM)

    registry.upsert_profile("100", "100", MessengerProfile(first_name="Иван"))
    registry.upsert_profile("100", "555", MessengerProfile(first_name="Иван", username="ivan_new"))

    accounts = db.query(MessengerAccount).all()
    assert len(accounts) == 1
    assert accounts[0].chat_id == "555"
    assert accounts[0].username == "ivan_new"


def test_upsert_never_touches_owner(db, make_user, linked_account) -> None:
    user = make_user()
    linked_account("100", user)
    registry = MessengerAccountRegistry(db, Platform.TELEGRAM)

    registry.upsert_profile("100", "100", MessengerProfile(first_name="Другое имя"))

    assert owner_of(registry.find_by_external_id("100")) == LinkedTo(user.id)


def test_upsert_reactivates_account_that_blocked_the_bot(db, seen_account) -> None:
    account = seen_account("100")
    registry = MessengerAccountRegistry(db, Platform.TELEGRAM)
    registry.deactivate(account.id)
    assert registry.find_by_external_id("100").is_active is False

    registry.upsert_profile("100", "100", MessengerProfile())

    assert registry.find_by_external_id("100").is_active is True


def test_link_unknown_identity_raises_not_yet_seen(db, make_user) -> None:
    user = make_user()
    registry = MessengerAccountRegistry(db, Platform.TELEGRAM)

    with pytest.raises(AccountNotYetSeen) as exc_info:
        registry.link_account("999", user.id)

    assert exc_info.value.http_status == 404


def test_link_sets_owner_and_is_found_by_web_account(db, make_user, seen_account) -> None:
    user = make_user()
    seen_account("100")
    registry = MessengerAccountRegistry(db, Platform.TELEGRAM)

    account = registry.link_account("100", user.id)

    assert owner_of(account) == LinkedTo(user.id)
    assert registry.find_by_web_account(user.id).external_id == "100"


def test_link_rejects_already_owned_identity(db, make_user, linked_account) -> None:
    owner, other = make_user(), make_user()
    linked_account("100", owner)
    registry = MessengerAccountRegistry(db, Platform.TELEGRAM)

    with pytest.raises(AccountAlreadyLinked) as same_user:
        registry.link_account("100", owner.id)
    with pytest.raises(AccountAlreadyLinked) as other_user:
        registry.link_account("100", other.id)

    assert same_user.value.details["sameUser"] is True
    assert other_user.value.details["sameUser"] is False
    assert owner_of(registry.find_by_external_id("100")) == LinkedTo(owner.id)


def test_web_account_owns_at_most_one_identity_per_platform(db, make_user, linked_account, seen_account) -> None:
    user = make_user()
    linked_account("100", user)
    seen_account("200")
    registry = MessengerAccountRegistry(db, Platform.TELEGRAM)

    with pytest.raises(AccountAlreadyLinked) as exc_info:
        registry.link_account("200", user.id)

    assert exc_info.value.code == "WEB_ACCOUNT_ALREADY_LINKED"
    assert owner_of(registry.find_by_external_id("200")) == Unlinked()


def test_same_web_account_may_link_one_identity_on_each_platform(db, make_user, linked_account) -> None:
    user = make_user()

    linked_account("100", user, platform=Platform.TELEGRAM)
    linked_account("100", user, platform=Platform.MAX)

    assert MessengerAccountRegistry(db, Platform.TELEGRAM).find_by_web_account(user.id) is not None
    assert MessengerAccountRegistry(db, Platform.MAX).find_by_web_account(user.id) is not None


def test_unlink_returns_identity_to_unlinked(db, make_user, linked_account) -> None:
    user = make_user()
    linked_account("100", user)
    registry = MessengerAccountRegistry(db, Platform.TELEGRAM)

    assert registry.unlink_account("100") is True
    assert registry.unlink_account("100") is False
    assert owner_of(registry.find_by_external_id("100")) == Unlinked()
    assert registry.find_by_web_account(user.id) is None


def test_set_notifications_toggles_opt_in(db, seen_account) -> None:
    seen_account("100")
    registry = MessengerAccountRegistry(db, Platform.TELEGRAM)

    assert registry.set_notifications("100", False) is True
    assert registry.find_by_external_id("100").notifications is False
    assert registry.set_notifications("missing", True) is False
