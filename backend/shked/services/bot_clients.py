"""
Outbound HTTP clients for the Telegram and Max bot APIs.

Clients are plain objects built from settings and passed to whoever needs
them, so tests can swap in a fake. Delivery helpers never raise on HTTP
problems: they return (ok, error) the same way the notification worker
expects, with errors one of:

    RATE_LIMIT:<seconds>   platform asked to slow down
    BOT_BLOCKED            user blocked the bot (403)
    HTTP_<code>: <body>    any other non-2xx
    EXCEPTION: <text>      network failure / timeout
"""
from __future__ import annotations

import logging
from typing import Any, Protocol

import requests

from ..config import settings
from ..domain_errors import BotNotConfigured
from ..models import Platform

logger = logging.getLogger(__name__)

DeliveryResult = tuple[bool, str | None]


class BotClient(Protocol):
    platform: Platform
    supports_callback_answers: bool

    @property
    def is_configured(self) -> bool: ...

    def send_message(self, chat_id: str, text: str, parse_mode: str | None = "Markdown") -> DeliveryResult: ...

    def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> bool: ...

    def set_webhook(self, url: str, secret: str | None = None) -> bool: ...

    def get_webhook_info(self) -> dict[str, Any] | None: ...

    def get_me(self) -> dict[str, Any] | None: ...


def _classify_response(response: requests.Response) -> DeliveryResult:
    if 200 <= response.status_code < 300:
        return True, None
    if response.status_code == 429:
        try:
            data = response.json()
        except ValueError:
            data = {}
        retry_after = data.get("parameters", {}).get("retry_after", 60)
        return False, f"RATE_LIMIT:{retry_after}"
    if response.status_code == 403:
        return False, "BOT_BLOCKED"
    return False, f"HTTP_{response.status_code}: {response.text[:200]}"


class TelegramBotClient:
    """Telegram Bot API over HTTPS."""

    platform = Platform.TELEGRAM
    supports_callback_answers = True

    def __init__(
        self,
        token: str | None,
        *,
        api_base_url: str = "https://api.telegram.org",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.token = token
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.token)

    def _url(self, method: str) -> str:
        if not self.token:
            raise BotNotConfigured(message="TELEGRAM_BOT_TOKEN not configured")
        return f"{self.api_base_url}/bot{self.token}/{method}"

    def send_message(self, chat_id: str, text: str, parse_mode: str | None = "Markdown") -> DeliveryResult:
        if not self.token:
            return False, "TELEGRAM_BOT_TOKEN not configured"

        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        try:
            response = self.session.post(self._url("sendMessage"), json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            return False, f"EXCEPTION: {e}"
        return _classify_response(response)

    def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> bool:
        payload: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        ok, error = self._post("answerCallbackQuery", payload)
        if not ok:
            logger.warning(f"⚠️ answerCallbackQuery failed: {error}")
        return ok

    def set_webhook(self, url: str, secret: str | None = None) -> bool:
        payload: dict[str, Any] = {"url": url, "allowed_updates": ["message", "callback_query"]}
        if secret:
            payload["secret_token"] = secret
        ok, error = self._post("setWebhook", payload)
        if not ok:
            logger.error(f"❌ setWebhook failed: {error}")
        return ok

    def get_webhook_info(self) -> dict[str, Any] | None:
        return self._get("getWebhookInfo")

    def get_me(self) -> dict[str, Any] | None:
        return self._get("getMe")

    def _post(self, method: str, payload: dict[str, Any]) -> DeliveryResult:
        if not self.token:
            return False, "TELEGRAM_BOT_TOKEN not configured"
        try:
            response = self.session.post(self._url(method), json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            return False, f"EXCEPTION: {e}"
        return _classify_response(response)

    def _get(self, method: str) -> dict[str, Any] | None:
        if not self.token:
            return None
        try:
            response = self.session.get(self._url(method), timeout=self.timeout)
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"❌ Telegram {method} failed: {e}")
            return None


class MaxBotClient:
    """Max messenger Bot API (botapi.max.ru), token passed as access_token."""

    platform = Platform.MAX
    # Max has no equivalent of answerCallbackQuery for our webhook flow.
    supports_callback_answers = False

    def __init__(
        self,
        token: str | None,
        *,
        api_base_url: str = "https://botapi.max.ru",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        self.token = token
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.token)

    def _params(self, **extra: Any) -> dict[str, Any]:
        return {"access_token": self.token, **extra}

    def send_message(self, chat_id: str, text: str, parse_mode: str | None = "Markdown") -> DeliveryResult:
        if not self.token:
            return False, "MAX_BOT_TOKEN not configured"

        body: dict[str, Any] = {"text": text}
        if parse_mode:
            body["format"] = parse_mode.lower()
        try:
            response = self.session.post(
                f"{self.api_base_url}/messages",
                params=self._params(chat_id=chat_id),
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return False, f"EXCEPTION: {e}"
        return _classify_response(response)

    def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> bool:
        logger.info(f"ℹ️ Max callbacks are not answered (callback {callback_query_id})")
        return False

    def set_webhook(self, url: str, secret: str | None = None) -> bool:
        if not self.token:
            return False
        body: dict[str, Any] = {"url": url, "update_types": ["message_created", "message_callback"]}
        if secret:
            body["secret"] = secret
        try:
            response = self.session.post(
                f"{self.api_base_url}/subscriptions",
                params=self._params(),
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"❌ Max subscription failed: {e}")
            return False
        ok, error = _classify_response(response)
        if not ok:
            logger.error(f"❌ Max subscription failed: {error}")
        return ok

    def get_webhook_info(self) -> dict[str, Any] | None:
        return self._get("/subscriptions")

    def get_me(self) -> dict[str, Any] | None:
        return self._get("/me")

    def _get(self, path: str) -> dict[str, Any] | None:
        if not self.token:
            return None
        try:
            response = self.session.get(f"{self.api_base_url}{path}", params=self._params(), timeout=self.timeout)
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"❌ Max {path} failed: {e}")
            return None


def build_bot_client(platform: Platform) -> BotClient:
    """Construct the client for a platform from application settings."""
    platform = Platform(platform)
    if platform is Platform.TELEGRAM:
        return TelegramBotClient(
            settings.TELEGRAM_BOT_TOKEN,
            api_base_url=settings.TELEGRAM_API_BASE_URL,
            timeout=settings.BOT_HTTP_TIMEOUT_SECONDS,
        )
    return MaxBotClient(
        settings.MAX_BOT_TOKEN,
        api_base_url=settings.MAX_API_BASE_URL,
        timeout=settings.BOT_HTTP_TIMEOUT_SECONDS,
    )
