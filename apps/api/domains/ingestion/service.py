"""Ingestion service — dedup, raw email persistence, extraction, pending transaction.

Steps run in order and are not wrapped in a transaction: a failure after the
raw email insert leaves that row in place for manual inspection. Funding
source resolution and the chat notification are best-effort.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from typing import Any, Dict, Optional

import structlog
from supabase import Client

from apps.api.core.errors import PersistenceError
from apps.api.telegram_client import TelegramClient
from packages.budgeting.formatting import format_idr, format_timestamp
from packages.ingestion_engine import TransactionExtractor, parse_email

logger = structlog.get_logger()

DEFAULT_EMAIL_LABEL = "WalleTracker"
DEFAULT_SOURCE_TYPE = "other"


@dataclass
class IngestOutcome:
    raw_email_id: str
    transaction_id: Optional[str] = None
    deduped: bool = False
    transaction: Optional[Dict[str, Any]] = None
    source_name: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        return {
            "raw_email_id": self.raw_email_id,
            "transaction_id": self.transaction_id,
            "deduped": self.deduped,
        }


class IngestionService:
    def __init__(
        self,
        client: Client,
        currency: str = "IDR",
        user_id: Optional[str] = None,
        extractor: Optional[TransactionExtractor] = None,
    ):
        self.client = client
        self.currency = currency
        self.user_id = user_id
        self.extractor = extractor

    def ingest(self, payload: Dict[str, Any]) -> IngestOutcome:
        message_id = payload["gmail_message_id"]

        existing = self.find_existing(message_id)
        if existing:
            logger.info("email_deduped", gmail_message_id=message_id, raw_email_id=existing.raw_email_id)
            return existing

        received_at = payload.get("received_at") or _utc_now()
        raw_row = {
            "received_at": received_at,
            "from_email": payload.get("from_email"),
            "to_email": payload.get("to_email"),
            "subject": payload.get("subject"),
            "date_header": payload.get("date_header"),
            "gmail_message_id": message_id,
            "thread_id": payload.get("thread_id"),
            "email_label": payload.get("email_label") or DEFAULT_EMAIL_LABEL,
            "text_body": payload.get("text_body"),
            "html_body": payload.get("html_body"),
            "raw_payload": payload,
        }
        try:
            raw_email = self.client.table("raw_emails").insert(raw_row).execute().data[0]
        except Exception as e:
            # A concurrent delivery of the same message may have won the unique key
            concurrent = self._find_quietly(message_id)
            if concurrent:
                logger.info("email_deduped_after_conflict", gmail_message_id=message_id)
                return concurrent
            logger.error("raw_email_insert_failed", gmail_message_id=message_id, error=str(e))
            raise PersistenceError(str(e)) from e

        result = self.extractor.extract(payload) if self.extractor else parse_email(payload)
        source_id = self.resolve_source_of_fund(result.source_of_fund)

        tx_row = {
            "status": "pending",
            "happened_at": result.happened_at or received_at,
            "amount": result.amount,
            "direction": result.direction,
            "merchant": result.merchant,
            "note": result.note,
            "source": "email",
            "source_ref": raw_email["id"],
            "source_of_fund_id": source_id,
            "currency": self.currency,
            "parse_meta": result.parse_meta(),
        }
        if self.user_id:
            tx_row["user_id"] = self.user_id
        try:
            transaction = self.client.table("transactions").insert(tx_row).execute().data[0]
        except Exception as e:
            logger.error("pending_transaction_insert_failed", raw_email_id=raw_email["id"], error=str(e))
            raise PersistenceError(str(e)) from e

        logger.info(
            "email_ingested",
            raw_email_id=raw_email["id"],
            transaction_id=transaction["id"],
            amount=result.amount,
            direction=result.direction,
            confidence=result.confidence,
            rules=result.rules_triggered,
        )
        return IngestOutcome(
            raw_email_id=raw_email["id"],
            transaction_id=transaction["id"],
            transaction=transaction,
            source_name=result.source_of_fund,
        )

    def find_existing(self, message_id: str) -> Optional[IngestOutcome]:
        try:
            rows = (
                self.client.table("raw_emails")
                .select("id")
                .eq("gmail_message_id", message_id)
                .limit(1)
                .execute()
                .data
            )
            if not rows:
                return None
            raw_id = rows[0]["id"]
            linked = (
                self.client.table("transactions")
                .select("id")
                .eq("source_ref", raw_id)
                .limit(1)
                .execute()
                .data
            )
        except Exception as e:
            logger.error("dedup_lookup_failed", gmail_message_id=message_id, error=str(e))
            raise PersistenceError(str(e)) from e

        return IngestOutcome(
            raw_email_id=raw_id,
            transaction_id=linked[0]["id"] if linked else None,
            deduped=True,
        )

    def _find_quietly(self, message_id: str) -> Optional[IngestOutcome]:
        try:
            return self.find_existing(message_id)
        except PersistenceError:
            return None

    def resolve_source_of_fund(self, name: Optional[str]) -> Optional[str]:
        """Id of the named funding source, created if missing; None on any failure."""
        if not name:
            return None
        try:
            rows = (
                self.client.table("source_of_funds")
                .select("id")
                .ilike("name", name)
                .limit(1)
                .execute()
                .data
            )
            if rows:
                return rows[0]["id"]
            created = (
                self.client.table("source_of_funds")
                .insert({"name": name, "type": DEFAULT_SOURCE_TYPE})
                .execute()
                .data
            )
            return created[0]["id"] if created else None
        except Exception as e:
            logger.warning("source_of_fund_resolution_failed", name=name, error=str(e))
            return None


def notification_text(transaction: Dict[str, Any], source_name: Optional[str], tz: str) -> str:
    direction = str(transaction.get("direction") or "").upper()
    return (
        "🆕 <b>Pending Transaction</b>\n\n"
        f"💰 <b>{format_idr(transaction.get('amount'), transaction.get('currency') or 'IDR')}</b>\n"
        f"🏪 {escape(str(transaction.get('merchant') or '-'))}\n"
        f"📅 {format_timestamp(transaction.get('happened_at'), tz)}\n"
        f"🔄 {direction}\n"
        f"💳 {escape(source_name or 'Unknown Source')}\n"
        f"📝 {escape(str(transaction.get('note') or '-'))}\n\n"
        "Please categorize or edit this transaction."
    )


def notification_keyboard(transaction_id: str) -> Dict[str, Any]:
    return {
        "inline_keyboard": [
            [{"text": "✅ Confirm & Categorize", "callback_data": f"tx_confirm:{transaction_id}"}],
            [
                {"text": "🏷️ Set Category", "callback_data": f"tx_cat:{transaction_id}"},
                {"text": "🏦 Set Source", "callback_data": f"tx_src:{transaction_id}"},
            ],
            [
                {"text": "✏️ Edit Amount", "callback_data": f"tx_amt:{transaction_id}"},
                {"text": "🕒 Edit Date", "callback_data": f"tx_date:{transaction_id}"},
            ],
            [{"text": "❌ Reject", "callback_data": f"tx_reject:{transaction_id}"}],
        ]
    }


async def notify_pending_transaction(
    telegram: TelegramClient,
    chat_id: str,
    transaction: Dict[str, Any],
    source_name: Optional[str],
    tz: str,
) -> None:
    """Tell the owner's chat about a new pending transaction. Never raises."""
    if not chat_id:
        logger.info("notification_skipped", reason="no_chat_id", transaction_id=transaction.get("id"))
        return
    try:
        await telegram.send_message(
            chat_id,
            notification_text(transaction, source_name, tz),
            reply_markup=notification_keyboard(transaction["id"]),
        )
    except Exception as e:
        logger.error("notification_failed", transaction_id=transaction.get("id"), error=str(e))


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
