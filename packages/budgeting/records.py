"""Canonical ledger records.

The store holds two generations of the same data: the current shape
(``direction``, ``happened_at``, ``category_id``/``subcategory_id``,
``source_of_fund_id``, status ``completed``) and the legacy shape
(``type``, ``date``, ``category``/``subcategory``, ``source_of_funds_id``,
status ``paid``). Rows are mapped once, here, into one representation; every
aggregation and report works on that representation only.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional

from .periods import DEFAULT_TIMEZONE, local_date_of

SETTLED_STATUSES = ("completed", "paid")
INTERNAL_TRANSFER_MARKER = "internal transfer"

EXPENSE = "expense"
INCOME = "income"


def to_amount(value) -> float:
    if value is None or value == "":
        return 0.0
    return float(value)


def clean_total(value: float):
    """Integral totals as int, everything else rounded to cents."""
    rounded = round(float(value), 2)
    if rounded.is_integer():
        return int(rounded)
    return rounded


def _first(row: Mapping[str, Any], *keys: str):
    for key in keys:
        value = row.get(key)
        if value not in (None, ""):
            return value
    return None


@dataclass(frozen=True)
class LedgerTransaction:
    id: Optional[str]
    amount: float
    occurred_on: Optional[date]
    status: Optional[str]
    is_expense: bool
    is_income: bool
    description: str = ""
    merchant: str = ""
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    source_of_fund_id: Optional[str] = None

    @property
    def label(self) -> str:
        return self.description or self.merchant or "No description"

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES

    @property
    def is_internal_transfer(self) -> bool:
        text = f"{self.description} {self.merchant}".lower()
        return INTERNAL_TRANSFER_MARKER in text

    @property
    def counts_as_expense(self) -> bool:
        return self.is_expense

    @property
    def counts_as_income(self) -> bool:
        # Transfers between own accounts must not inflate income; the
        # expense leg is still counted.
        return self.is_income and not self.is_internal_transfer

    def counts_as(self, kind: str) -> bool:
        if kind == EXPENSE:
            return self.counts_as_expense
        if kind == INCOME:
            return self.counts_as_income
        raise ValueError(f"Unknown transaction kind: {kind}")


def transaction_from_row(row: Mapping[str, Any], tz: str = DEFAULT_TIMEZONE) -> LedgerTransaction:
    """Map a stored transaction row of either schema generation."""
    direction = row.get("direction")
    kind = row.get("type")

    occurred_on = local_date_of(row.get("date"), tz) or local_date_of(row.get("happened_at"), tz)

    return LedgerTransaction(
        id=row.get("id"),
        amount=to_amount(row.get("amount")),
        occurred_on=occurred_on,
        status=row.get("status"),
        is_expense=direction == "debit" or kind == EXPENSE,
        is_income=direction == "credit" or kind == INCOME,
        description=str(row.get("description") or ""),
        merchant=str(row.get("merchant") or ""),
        category_id=_first(row, "category_id", "category"),
        subcategory_id=_first(row, "subcategory_id", "subcategory"),
        source_of_fund_id=_first(row, "source_of_fund_id", "source_of_funds_id"),
    )


@dataclass(frozen=True)
class BudgetLine:
    id: Optional[str]
    user_id: Optional[str]
    period_start: str
    period_end: str
    subcategory_id: Optional[str]
    category_type: str
    amount: float


def budget_from_row(row: Mapping[str, Any]) -> BudgetLine:
    category_type = str(_first(row, "category_type", "type") or EXPENSE).lower()
    return BudgetLine(
        id=row.get("id"),
        user_id=row.get("user_id"),
        period_start=str(row.get("period_start_date"))[:10],
        period_end=str(row.get("period_end_date"))[:10],
        subcategory_id=_first(row, "subcategory_id", "subcategory"),
        category_type=category_type,
        amount=to_amount(row.get("amount")),
    )
