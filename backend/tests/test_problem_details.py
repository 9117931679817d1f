from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from shked.domain_errors import (
    AccountAlreadyLinked,
    BotNotConfigured,
    DomainError,
    MalformedWebhookPayload,
    TokenNotFound,
)
from shked.problem_details import build_problem_details_response, domain_error_handler


def test_already_linked_account_renders_conflict_with_details() -> None:
    response = build_problem_details_response(AccountAlreadyLinked(details={"sameUser": False}))

    assert response.status_code == 409
    assert response.media_type == "application/problem+json"
    body = response.body.decode("utf-8")
    assert '"type":"https://api.shked.local/problems/messenger_already_linked"' in body
    assert '"title":"Conflict"' in body
    assert '"detail":"Messenger account already linked"' in body
    assert '"details":{"sameUser":false}' in body


@pytest.mark.parametrize(
    ("error", "status", "title"),
    [
        (MalformedWebhookPayload(), 500, "Internal Server Error"),
        (BotNotConfigured(), 503, "Service Unavailable"),
        (TokenNotFound(), 400, "Bad Request"),
    ],
)
def test_error_types_keep_their_http_mapping(error, status, title) -> None:
    response = build_problem_details_response(error)

    body = response.body.decode("utf-8")
    assert response.status_code == status
    assert f'"title":"{title}"' in body
    assert f'"code":"{error.code}"' in body
    assert '"details"' not in body


def test_exception_handler_turns_link_errors_into_problem_details() -> None:
    app = FastAPI()
    app.add_exception_handler(DomainError, domain_error_handler)

    @app.post("/link")
    def _link():
        raise TokenNotFound(details={"platform": "telegram"})

    response = TestClient(app).post("/link")

    assert response.status_code == 400
    assert response.headers["content-type"].startswith("application/problem+json")
    payload = response.json()
    assert payload["code"] == "LINK_TOKEN_NOT_FOUND"
    assert payload["detail"] == "Link token not found"
    assert payload["details"] == {"platform": "telegram"}


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (MalformedWebhookPayload(details={"platform": "max"}), 500),
        (AccountAlreadyLinked(details={"sameUser": True}), 409),
    ],
)
def test_exception_handler_keeps_status_of_each_error(error, status) -> None:
    app = FastAPI()
    app.add_exception_handler(DomainError, domain_error_handler)

    @app.get("/fail")
    def _fail():
        raise error

    response = TestClient(app).get("/fail")

    assert response.status_code == status
    assert response.json()["code"] == error.code
    assert response.json()["details"] == error.details
