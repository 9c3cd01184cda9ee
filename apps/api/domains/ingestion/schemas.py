"""Pydantic schemas for the ingestion domain."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EmailIngestRequest(BaseModel):
    """A forwarded notification email, as posted by the mail relay."""

    # Unknown keys are kept so the raw payload can be stored verbatim
    model_config = ConfigDict(extra="allow")

    gmail_message_id: str = Field(..., min_length=1, description="Deduplication key")
    received_at: Optional[str] = None
    from_email: Optional[str] = None
    to_email: Optional[str] = None
    subject: Optional[str] = None
    date_header: Optional[str] = None
    thread_id: Optional[str] = None
    text_body: Optional[str] = None
    html_body: Optional[str] = None
    email_label: Optional[str] = None


class IngestResponse(BaseModel):
    """Outcome of one ingestion call."""

    raw_email_id: str
    transaction_id: Optional[str] = None
    deduped: bool = False
