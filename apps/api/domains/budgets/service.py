"""Budgets service — wiring of the ledger store, aggregation engine and reports."""

from datetime import date

from fastapi import Depends
from supabase import Client

from apps.api.core.auth import get_service_client
from apps.api.core.config import Settings, get_settings
from apps.api.core.errors import ValidationError
from packages.budgeting import AggregationEngine, BudgetPeriod, ReportService, SupabaseLedgerStore


def build_engine(client: Client, settings: Settings) -> AggregationEngine:
    store = SupabaseLedgerStore(client, tz=settings.LEDGER_TIMEZONE)
    return AggregationEngine(store, default_user_id=settings.LEDGER_USER_ID)


def get_aggregation_engine(
    client: Client = Depends(get_service_client),
    settings: Settings = Depends(get_settings),
) -> AggregationEngine:
    return build_engine(client, settings)


def get_report_service(engine: AggregationEngine = Depends(get_aggregation_engine)) -> ReportService:
    return ReportService(engine.store, engine)


def parse_period(start: str, end: str) -> BudgetPeriod:
    try:
        return BudgetPeriod.from_iso(start, end)
    except ValueError as e:
        raise ValidationError(f"Invalid period {start}..{end}: {e}") from e


def parse_day(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {field} {value!r}: expected YYYY-MM-DD") from e
