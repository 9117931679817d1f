"""
Max messenger bridge routes.

Same surface as the Telegram bridge. Max updates carry string identifiers
and callback queries are logged only.
"""
from ..models import Platform
from .messenger_common import create_messenger_router, get_max_client

router = create_messenger_router(
    Platform.MAX,
    client_dependency=get_max_client,
    secret_header="X-Max-Bot-Api-Secret",
    secret_setting="MAX_WEBHOOK_SECRET",
)
