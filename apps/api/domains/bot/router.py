"""Telegram webhook router."""

import structlog
from fastapi import APIRouter, Depends, Request
from supabase import Client

from apps.api.core.auth import get_service_client, require_webhook_secret
from apps.api.core.config import Settings, get_settings
from apps.api.domains.bot.service import BotService
from apps.api.telegram_client import TelegramClient, get_telegram_client

router = APIRouter(prefix="/telegram", tags=["bot"])
logger = structlog.get_logger()


@router.post("/webhook", dependencies=[Depends(require_webhook_secret)])
async def telegram_webhook(
    request: Request,
    client: Client = Depends(get_service_client),
    settings: Settings = Depends(get_settings),
    telegram: TelegramClient = Depends(get_telegram_client),
):
    """Handle one Telegram update.

    Always acknowledges with ``{"ok": true}`` once the secret is accepted;
    Telegram would otherwise redeliver the same update indefinitely.
    """
    try:
        update = await request.json()
        await BotService(client, telegram, settings).handle_update(update)
    except Exception as e:
        logger.error("telegram_update_failed", error=str(e), exc_info=True)
    return {"ok": True}
