"""
Period aggregation engine.

Derives ``period_summaries`` rows from budgets and settled transactions. A
summary is a cache: every run overwrites the full row, so re-running with
unchanged inputs leaves the table unchanged apart from the timestamp.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import BudgetValidationError
from .periods import BudgetPeriod
from .records import EXPENSE, INCOME, BudgetLine, LedgerTransaction, clean_total, to_amount
from .store import SupabaseLedgerStore

logger = logging.getLogger(__name__)

SummaryKey = Tuple[Optional[str], str, str]


@dataclass
class RecalculationResult:
    processed: List[Dict[str, str]] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": len(self.processed),
            "failed": list(self.failed),
            "ok": self.ok,
        }


@dataclass
class PeriodTotals:
    budgeted_expense: float = 0.0
    budgeted_income: float = 0.0
    actual_expense: float = 0.0
    actual_income: float = 0.0


def is_uuid(value) -> bool:
    if not value:
        return False
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def sum_actuals(transactions: Iterable[LedgerTransaction]) -> Tuple[float, float]:
    """(expense, income) over settled transactions, internal transfers kept out of income."""
    expense = 0.0
    income = 0.0
    for tx in transactions:
        if not tx.is_settled:
            continue
        if tx.counts_as_expense:
            expense += tx.amount
        if tx.counts_as_income:
            income += tx.amount
    return expense, income


def group_budgets(budgets: Iterable[BudgetLine], default_user_id: Optional[str] = None) -> Dict[SummaryKey, PeriodTotals]:
    groups: Dict[SummaryKey, PeriodTotals] = {}
    for line in budgets:
        key = (line.user_id or default_user_id or None, line.period_start, line.period_end)
        totals = groups.setdefault(key, PeriodTotals())
        if line.category_type == INCOME:
            totals.budgeted_income += line.amount
        else:
            totals.budgeted_expense += line.amount
    return groups


class AggregationEngine:
    def __init__(self, store: SupabaseLedgerStore, default_user_id: Optional[str] = None):
        self.store = store
        self.default_user_id = default_user_id or None

    def recalculate_all(self) -> RecalculationResult:
        """Rebuild the summary of every period that has at least one budget."""
        logger.info("Starting full period summary recalculation")
        budgets = self.store.fetch_budgets()
        result = self._recalculate(group_budgets(budgets, self.default_user_id))
        logger.info(
            "Full recalculation finished: %d processed, %d failed",
            len(result.processed),
            len(result.failed),
        )
        return result

    def recalculate_period(self, period: BudgetPeriod) -> RecalculationResult:
        """Rebuild only the summaries of ``period``."""
        budgets = [
            line
            for line in self.store.fetch_budgets(period.start_iso)
            if line.period_end == period.end_iso
        ]
        return self._recalculate(group_budgets(budgets, self.default_user_id))

    def _recalculate(self, groups: Dict[SummaryKey, PeriodTotals]) -> RecalculationResult:
        result = RecalculationResult()
        actuals: Dict[Tuple[str, str], Tuple[float, float]] = {}

        for (user_id, start, end), totals in groups.items():
            if (start, end) not in actuals:
                period = BudgetPeriod.from_iso(start, end)
                actuals[(start, end)] = sum_actuals(self.store.fetch_settled_transactions(period))
            totals.actual_expense, totals.actual_income = actuals[(start, end)]

            row = summary_row(user_id, start, end, totals)
            entry = {"user_id": user_id, "start": start, "end": end}
            try:
                self.store.upsert_period_summary(row)
            except Exception as e:
                logger.error("Failed to upsert summary for %s..%s: %s", start, end, e)
                result.failed.append({**entry, "error": str(e)})
                continue
            result.processed.append(entry)

        return result

    def live_totals(self, period: BudgetPeriod) -> PeriodTotals:
        """Totals computed straight from budgets and transactions, nothing written."""
        totals = PeriodTotals()
        for line in self.store.fetch_budgets(period.start_iso):
            if line.period_end != period.end_iso:
                continue
            if line.category_type == INCOME:
                totals.budgeted_income += line.amount
            else:
                totals.budgeted_expense += line.amount
        totals.actual_expense, totals.actual_income = sum_actuals(
            self.store.fetch_settled_transactions(period)
        )
        return totals

    def save_budget(
        self,
        period: BudgetPeriod,
        subcategory_id: str,
        amount,
        user_id: Optional[str] = None,
        category_type: str = EXPENSE,
    ) -> Dict[str, Any]:
        """Create or update one budget line, then refresh that period's summary."""
        if not is_uuid(subcategory_id):
            raise BudgetValidationError(
                f"Invalid subcategory id {subcategory_id!r}: expected a UUID"
            )
        try:
            value = to_amount(amount)
        except (TypeError, ValueError):
            raise BudgetValidationError(f"Invalid budget amount {amount!r}")
        if not math.isfinite(value):
            raise BudgetValidationError(f"Invalid budget amount {amount!r}: must be a finite number")
        if value < 0:
            raise BudgetValidationError("Budget amount must not be negative")
        if category_type not in (EXPENSE, INCOME):
            raise BudgetValidationError(f"Invalid category type {category_type!r}")

        existing = self.store.find_budget(period.start_iso, subcategory_id)
        if existing:
            changes: Dict[str, Any] = {"amount": value}
            if is_uuid(user_id):
                changes["user_id"] = user_id
            self.store.update_budget(existing["id"], changes)
            budget = {**existing, **changes}
        else:
            row = {
                "period_start_date": period.start_iso,
                "period_end_date": period.end_iso,
                "subcategory_id": subcategory_id,
                "category_type": category_type,
                "amount": value,
            }
            if is_uuid(user_id):
                row["user_id"] = user_id
            budget = self.store.insert_budget(row)

        logger.info("Saved budget for %s in period %s", subcategory_id, period.start_iso)
        recalculation = self.recalculate_period(period)
        return {"budget": budget, "recalculation": recalculation.to_dict()}

    def previous_budget_amount(self, subcategory_id: str, before_start: str):
        """Most recent budget amount set before ``before_start``, or 0."""
        row = self.store.latest_budget_before(subcategory_id, before_start)
        if not row:
            return 0
        return clean_total(to_amount(row.get("amount")))


def summary_row(user_id: Optional[str], start: str, end: str, totals: PeriodTotals) -> Dict[str, Any]:
    return {
        "user_id": user_id,
        "period_start_date": start,
        "period_end_date": end,
        "total_budgeted_expense": clean_total(totals.budgeted_expense),
        "total_budgeted_income": clean_total(totals.budgeted_income),
        "total_actual_expense": clean_total(totals.actual_expense),
        "total_actual_income": clean_total(totals.actual_income),
        "last_recalculated_at": datetime.now(timezone.utc).isoformat(),
    }
