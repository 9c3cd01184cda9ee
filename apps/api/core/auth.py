"""Centralized authentication dependencies.

Provides the service-role Supabase client (every request acts on the single
ledger, so there is no per-user client) and the shared-secret checks for
the ingestion API and the Telegram webhook.
"""

import hmac
import os
from typing import Optional

from fastapi import Depends, Header
from supabase import Client, create_client

from apps.api.core.config import Settings, get_settings
from apps.api.core.errors import AuthenticationError


def _get_supabase_url() -> str:
    url = os.environ.get("SUPABASE_URL")
    if not url:
        raise RuntimeError("SUPABASE_URL is not configured")
    return url


def get_service_client() -> Client:
    """Provide a service-role Supabase client (bypasses RLS).

    Used by the API gateway and by Celery workers.
    """
    url = _get_supabase_url()
    service_key = os.environ.get("SUPABASE_SERVICE_KEY", "")
    if not service_key:
        raise RuntimeError("SUPABASE_SERVICE_KEY is not configured")
    return create_client(url, service_key)


def secrets_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison; an unset secret never matches."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


async def require_api_key(
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject the request unless X-API-Key equals INGEST_API_KEY."""
    if not secrets_match(x_api_key, settings.INGEST_API_KEY):
        raise AuthenticationError("Invalid or missing API key")


async def require_webhook_secret(
    secret_token: Optional[str] = Header(default=None, alias="X-Telegram-Bot-Api-Secret-Token"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Check Telegram's secret header when a webhook secret is configured."""
    if not settings.TELEGRAM_WEBHOOK_SECRET:
        return
    if not secrets_match(secret_token, settings.TELEGRAM_WEBHOOK_SECRET):
        raise AuthenticationError("Invalid webhook secret")
