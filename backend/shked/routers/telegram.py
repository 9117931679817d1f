"""
Telegram bridge routes.
- Webhook handler for bot updates
- Link token flow: GET /link issues a token, the user sends /link TOKEN to the bot
- Admin send / config / stats
"""
from fastapi import Depends, HTTPException

from ..auth import PermissionChecker
from ..config import settings
from ..models import Platform, User
from .messenger_common import create_messenger_router, get_telegram_client, webhook_url

router = create_messenger_router(
    Platform.TELEGRAM,
    client_dependency=get_telegram_client,
    secret_header="X-Telegram-Bot-Api-Secret-Token",
    secret_setting="TELEGRAM_WEBHOOK_SECRET",
)


@router.get("/webhook/info")
def webhook_info(
    current_user: User = Depends(PermissionChecker("canManageBots")),
):
    """Info about webhook configuration for local testing (no secrets)."""
    if settings.ENV.lower() == "production":
        # Do not expose operational details in production.
        raise HTTPException(status_code=404, detail="Not found")

    return {
        "bot_username": settings.TELEGRAM_BOT_USERNAME,
        "webhook_url": webhook_url(Platform.TELEGRAM),
        "local_testing": "Use ngrok/cloudflare tunnel: ngrok http 8000, then POST /api/v1/telegram/config/webhook",
        "webhook_secret_configured": bool(settings.TELEGRAM_WEBHOOK_SECRET),
        "example_payload": {
            "update_id": 123456789,
            "message": {
                "message_id": 1,
                "from": {"id": 123456789, "first_name": "Иван"},
                "chat": {"id": 123456789, "type": "private"},
                "date": 1234567890,
                "text": "/link 0123abcd...",
            },
        },
    }
