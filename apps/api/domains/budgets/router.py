"""Budgets router — periods, reports, budget writes and recalculation."""

import structlog
from fastapi import APIRouter, Depends, Query

from apps.api.core.auth import require_api_key
from apps.api.core.config import Settings, get_settings
from apps.api.core.errors import PersistenceError, ValidationError
from apps.api.domains.budgets.schemas import BudgetIn, PreviousBudgetOut
from apps.api.domains.budgets.service import (
    get_aggregation_engine,
    get_report_service,
    parse_day,
    parse_period,
)
from packages.budgeting import (
    AggregationEngine,
    BudgetValidationError,
    LedgerReadError,
    ReportService,
    current_period,
    period_containing,
)
from packages.budgeting.formatting import format_period

router = APIRouter(tags=["budgets"], dependencies=[Depends(require_api_key)])
logger = structlog.get_logger()


@router.get("/periods/current")
async def get_current_period(settings: Settings = Depends(get_settings)):
    period = current_period(tz=settings.LEDGER_TIMEZONE)
    return {**period.as_dict(), "label": format_period(period)}


@router.get("/periods")
async def list_periods(
    limit: int = Query(default=5, ge=1, le=24),
    reports: ReportService = Depends(get_report_service),
):
    """Summarised periods, newest first."""
    periods = reports.available_periods(limit=limit)
    return {"periods": [{**p.as_dict(), "label": format_period(p)} for p in periods]}


@router.get("/periods/{start}/{end}")
async def get_period_stats(start: str, end: str, reports: ReportService = Depends(get_report_service)):
    period = parse_period(start, end)
    try:
        return reports.period_stats(period).to_dict()
    except LedgerReadError as e:
        raise PersistenceError(str(e)) from e


@router.get("/periods/{start}/{end}/breakdown")
async def get_period_breakdown(start: str, end: str, reports: ReportService = Depends(get_report_service)):
    period = parse_period(start, end)
    try:
        return reports.category_breakdown(period)
    except LedgerReadError as e:
        raise PersistenceError(str(e)) from e


@router.get("/periods/{start}/{end}/transactions")
async def list_period_transactions(
    start: str,
    end: str,
    kind: str = Query(default="expense", pattern="^(expense|income)$"),
    page: int = Query(default=1, ge=1),
    reports: ReportService = Depends(get_report_service),
):
    period = parse_period(start, end)
    try:
        return reports.list_transactions(period, kind, page)
    except LedgerReadError as e:
        raise PersistenceError(str(e)) from e


@router.post("/budgets")
async def save_budget(
    body: BudgetIn,
    engine: AggregationEngine = Depends(get_aggregation_engine),
    settings: Settings = Depends(get_settings),
):
    """Create or update a budget line and refresh that period's summary."""
    if body.period_start:
        period = period_containing(parse_day(body.period_start, "period_start"))
    else:
        period = current_period(tz=settings.LEDGER_TIMEZONE)

    try:
        outcome = engine.save_budget(
            period,
            body.subcategory_id,
            body.amount,
            user_id=body.user_id,
            category_type=body.category_type,
        )
    except BudgetValidationError as e:
        raise ValidationError(str(e)) from e
    except LedgerReadError as e:
        raise PersistenceError(str(e)) from e

    logger.info("budget_saved", subcategory_id=body.subcategory_id, period_start=period.start_iso)
    return {**period.as_dict(), **outcome}


@router.get("/budgets/previous", response_model=PreviousBudgetOut)
async def get_previous_budget(
    subcategory_id: str,
    before: str,
    engine: AggregationEngine = Depends(get_aggregation_engine),
):
    """Most recent budget amount for the subcategory before ``before``."""
    parse_day(before, "before")
    amount = engine.previous_budget_amount(subcategory_id, before)
    return {"subcategory_id": subcategory_id, "before": before, "amount": amount}


@router.post("/budgets/recalculate")
async def recalculate_budgets(engine: AggregationEngine = Depends(get_aggregation_engine)):
    """Rebuild every period summary now."""
    try:
        result = engine.recalculate_all()
    except LedgerReadError as e:
        raise PersistenceError(str(e)) from e
    logger.info("summaries_recalculated", processed=len(result.processed), failed=len(result.failed))
    return result.to_dict()
