"""
Read-side report queries over summaries, budgets and settled transactions.

Variance is reported as ``budget - actual``: positive means the line is under
budget (money left), negative means it overspent.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from .aggregation import AggregationEngine
from .periods import BudgetPeriod, local_today, period_containing
from .records import EXPENSE, INCOME, clean_total, to_amount
from .store import SupabaseLedgerStore

logger = logging.getLogger(__name__)

VARIANCE_CONVENTION = "budget_minus_actual"
PAGE_SIZE = 10
UNCATEGORIZED = "Uncategorized"
NO_SUBCATEGORY = "-"


def variance(budgeted, actual):
    """Budget minus actual. Works on scalars and pandas Series alike."""
    return budgeted - actual


@dataclass
class PeriodStats:
    period: BudgetPeriod
    actual_expense: float
    actual_income: float
    budgeted_expense: float
    budgeted_income: float
    source: str

    @property
    def net(self) -> float:
        return self.actual_income - self.actual_expense

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.period.as_dict(),
            "actual_expense": clean_total(self.actual_expense),
            "actual_income": clean_total(self.actual_income),
            "budgeted_expense": clean_total(self.budgeted_expense),
            "budgeted_income": clean_total(self.budgeted_income),
            "net": clean_total(self.net),
            "expense_variance": clean_total(variance(self.budgeted_expense, self.actual_expense)),
            "source": self.source,
        }


class ReportService:
    def __init__(self, store: SupabaseLedgerStore, engine: Optional[AggregationEngine] = None):
        self.store = store
        self.engine = engine or AggregationEngine(store)

    def available_periods(self, limit: int = 5) -> List[BudgetPeriod]:
        """Distinct summarised periods, newest first."""
        seen = set()
        periods: List[BudgetPeriod] = []
        for row in self.store.list_summary_periods():
            start = str(row["period_start_date"])[:10]
            if start in seen:
                continue
            seen.add(start)
            periods.append(BudgetPeriod.from_iso(start, row["period_end_date"]))
            if len(periods) >= limit:
                break
        return periods

    def period_stats(self, period: BudgetPeriod) -> PeriodStats:
        rows = self.store.fetch_period_summaries(period)
        if rows:
            return PeriodStats(
                period=period,
                actual_expense=sum(to_amount(r.get("total_actual_expense")) for r in rows),
                actual_income=sum(to_amount(r.get("total_actual_income")) for r in rows),
                budgeted_expense=sum(to_amount(r.get("total_budgeted_expense")) for r in rows),
                budgeted_income=sum(to_amount(r.get("total_budgeted_income")) for r in rows),
                source="summary",
            )

        logger.info("No summary for %s..%s, computing live", period.start_iso, period.end_iso)
        totals = self.engine.live_totals(period)
        return PeriodStats(
            period=period,
            actual_expense=totals.actual_expense,
            actual_income=totals.actual_income,
            budgeted_expense=totals.budgeted_expense,
            budgeted_income=totals.budgeted_income,
            source="live",
        )

    def category_breakdown(self, period: BudgetPeriod) -> Dict[str, Any]:
        """Expense budget vs actual per (category, subcategory), biggest spend first."""
        subcategories = self.store.subcategory_index()
        category_names = self.store.category_names()

        def names(category_id, subcategory_id):
            sub = subcategories.get(subcategory_id) if subcategory_id else None
            if sub:
                category_id = sub.get("category_id") or category_id
            category = category_names.get(category_id) if category_id else None
            subcategory = (sub or {}).get("name") or NO_SUBCATEGORY
            return category or UNCATEGORIZED, subcategory

        rows = []
        for line in self.store.fetch_budgets(period.start_iso):
            if line.period_end != period.end_iso or line.category_type != EXPENSE:
                continue
            category, subcategory = names(None, line.subcategory_id)
            rows.append((category, subcategory, line.amount, 0.0))

        for tx in self.store.fetch_settled_transactions(period):
            if not tx.counts_as_expense:
                continue
            category, subcategory = names(tx.category_id, tx.subcategory_id)
            rows.append((category, subcategory, 0.0, tx.amount))

        df = pd.DataFrame(rows, columns=["category", "subcategory", "budgeted", "actual"])
        df = df.groupby(["category", "subcategory"], as_index=False)[["budgeted", "actual"]].sum()
        df["variance"] = variance(df["budgeted"], df["actual"])
        df = df.sort_values(["actual", "category", "subcategory"], ascending=[False, True, True])

        lines = [
            {
                "category": record["category"],
                "subcategory": record["subcategory"],
                "budgeted": clean_total(record["budgeted"]),
                "actual": clean_total(record["actual"]),
                "variance": clean_total(record["variance"]),
            }
            for record in df.to_dict(orient="records")
        ]
        budgeted = float(df["budgeted"].sum())
        actual = float(df["actual"].sum())
        return {
            **period.as_dict(),
            "variance_convention": VARIANCE_CONVENTION,
            "lines": lines,
            "totals": {
                "budgeted": clean_total(budgeted),
                "actual": clean_total(actual),
                "variance": clean_total(variance(budgeted, actual)),
            },
        }

    def list_transactions(self, period: BudgetPeriod, kind: str, page: int = 1) -> Dict[str, Any]:
        if kind not in (EXPENSE, INCOME):
            raise ValueError(f"Unknown transaction kind: {kind}")

        matching = [tx for tx in self.store.fetch_settled_transactions(period) if tx.counts_as(kind)]
        matching.sort(key=lambda tx: (tx.occurred_on, str(tx.id or "")), reverse=True)

        total = len(matching)
        pages = max(1, math.ceil(total / PAGE_SIZE))
        page = min(max(1, page), pages)
        chunk = matching[(page - 1) * PAGE_SIZE : page * PAGE_SIZE]

        sources = self.store.source_of_fund_names() if chunk else {}
        items = [
            {
                "id": tx.id,
                "date": tx.occurred_on.isoformat(),
                "amount": clean_total(tx.amount),
                "label": tx.label,
                "source_of_fund": sources.get(tx.source_of_fund_id),
            }
            for tx in chunk
        ]
        return {
            **period.as_dict(),
            "kind": kind,
            "page": page,
            "pages": pages,
            "total": total,
            "total_amount": clean_total(sum(tx.amount for tx in matching)),
            "items": items,
        }

    def today_summary(self, today: Optional[date] = None) -> Dict[str, Any]:
        """Settled expenses that occurred on ``today`` (ledger timezone)."""
        today = today or local_today(tz=self.store.tz)
        expenses = [
            tx
            for tx in self.store.fetch_settled_transactions(period_containing(today))
            if tx.occurred_on == today and tx.counts_as_expense
        ]
        category_names = self.store.category_names() if expenses else {}
        items = [
            {
                "label": tx.label,
                "amount": clean_total(tx.amount),
                "category": category_names.get(tx.category_id) or UNCATEGORIZED,
            }
            for tx in expenses
        ]
        return {
            "date": today.isoformat(),
            "total": clean_total(sum(tx.amount for tx in expenses)),
            "items": items,
        }
