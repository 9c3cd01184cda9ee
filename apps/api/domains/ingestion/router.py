"""Ingestion router — forwarded notification emails to pending transactions."""

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends
from supabase import Client

from apps.api.core.auth import get_service_client, require_api_key
from apps.api.core.config import Settings, get_settings
from apps.api.domains.ingestion.schemas import EmailIngestRequest, IngestResponse
from apps.api.domains.ingestion.service import IngestionService, notify_pending_transaction
from apps.api.telegram_client import TelegramClient, get_telegram_client

router = APIRouter(prefix="/ingest", tags=["ingestion"], dependencies=[Depends(require_api_key)])
logger = structlog.get_logger()


@router.post("/email", response_model=IngestResponse)
async def ingest_email(
    body: EmailIngestRequest,
    background_tasks: BackgroundTasks,
    client: Client = Depends(get_service_client),
    settings: Settings = Depends(get_settings),
    telegram: TelegramClient = Depends(get_telegram_client),
):
    """Store the raw email, parse it and record a pending transaction.

    Re-delivery of an already seen ``gmail_message_id`` returns the earlier
    identifiers with ``deduped: true`` and writes nothing. The chat
    notification runs after the response is sent.
    """
    service = IngestionService(
        client,
        currency=settings.LEDGER_CURRENCY,
        user_id=settings.LEDGER_USER_ID,
    )
    outcome = service.ingest(body.model_dump(exclude_unset=True))

    if not outcome.deduped and outcome.transaction:
        background_tasks.add_task(
            notify_pending_transaction,
            telegram,
            settings.TELEGRAM_CHAT_ID,
            outcome.transaction,
            outcome.source_name,
            settings.LEDGER_TIMEZONE,
        )

    return outcome.to_response()
