"""
Supabase-backed ledger store.

Thin query layer over the PostgREST tables. Rows leave this module either as
plain dicts (writes, lookups) or as canonical records from ``records`` (the
aggregation inputs), so nothing downstream needs to know which schema
generation a row came from.
"""

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from postgrest.exceptions import APIError

from .errors import LedgerReadError
from .periods import DEFAULT_TIMEZONE, BudgetPeriod
from .records import (
    SETTLED_STATUSES,
    BudgetLine,
    LedgerTransaction,
    budget_from_row,
    transaction_from_row,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000

SUMMARY_TABLE = "period_summaries"
SUMMARY_CONFLICT_KEY = "user_id,period_start_date,period_end_date"


class SupabaseLedgerStore:
    def __init__(self, client, tz: str = DEFAULT_TIMEZONE):
        self.client = client
        self.tz = tz

    # --- helpers ---

    def _fetch_all(self, build_query: Callable[[], Any]) -> List[Dict[str, Any]]:
        """Read every row of a query, paging past the PostgREST row cap."""
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            response = build_query().range(offset, offset + PAGE_SIZE - 1).execute()
            batch = response.data or []
            rows.extend(batch)
            if len(batch) < PAGE_SIZE:
                return rows
            offset += PAGE_SIZE

    def _first(self, query) -> Optional[Dict[str, Any]]:
        response = query.limit(1).execute()
        return response.data[0] if response.data else None

    def _legacy_rows(self, build_query: Callable[[], Any]) -> List[Dict[str, Any]]:
        # Legacy tables may already be dropped on newer databases
        try:
            return build_query().execute().data or []
        except APIError as e:
            logger.warning("Legacy table query failed: %s", e)
            return []

    # --- budgets & transactions (aggregation inputs) ---

    def fetch_budgets(self, period_start: Optional[str] = None) -> List[BudgetLine]:
        def build():
            query = self.client.table("budgets").select("*")
            if period_start:
                query = query.eq("period_start_date", period_start)
            return query.order("id")

        try:
            rows = self._fetch_all(build)
        except Exception as e:
            raise LedgerReadError(f"Failed to read budgets: {e}") from e
        return [budget_from_row(row) for row in rows]

    def fetch_settled_transactions(self, period: BudgetPeriod) -> List[LedgerTransaction]:
        """Settled transactions whose local calendar date falls in ``period``.

        The timestamp window is widened by a day on each side so rows near a
        boundary are fetched regardless of offset; the exact inclusive check
        happens on the canonical date.
        """
        low = (period.start - timedelta(days=1)).isoformat()
        high = (period.end + timedelta(days=2)).isoformat()
        window = (
            f"and(date.gte.{period.start_iso},date.lte.{period.end_iso}),"
            f"and(happened_at.gte.{low},happened_at.lt.{high})"
        )

        def build():
            return (
                self.client.table("transactions")
                .select("*")
                .in_("status", list(SETTLED_STATUSES))
                .or_(window)
                .order("id")
            )

        try:
            rows = self._fetch_all(build)
        except Exception as e:
            raise LedgerReadError(
                f"Failed to read transactions for {period.start_iso}..{period.end_iso}: {e}"
            ) from e

        transactions = [transaction_from_row(row, self.tz) for row in rows]
        return [
            tx
            for tx in transactions
            if tx.is_settled and tx.occurred_on is not None and period.contains(tx.occurred_on)
        ]

    # --- period summaries ---

    def upsert_period_summary(self, row: Dict[str, Any]) -> None:
        table = self.client.table(SUMMARY_TABLE)
        if row.get("user_id") is not None:
            table.upsert(row, on_conflict=SUMMARY_CONFLICT_KEY).execute()
            return

        # NULL never conflicts in a unique index, so match it explicitly
        existing = self._first(
            self.client.table(SUMMARY_TABLE)
            .select("id")
            .is_("user_id", "null")
            .eq("period_start_date", row["period_start_date"])
            .eq("period_end_date", row["period_end_date"])
        )
        if existing:
            self.client.table(SUMMARY_TABLE).update(row).eq("id", existing["id"]).execute()
        else:
            self.client.table(SUMMARY_TABLE).insert(row).execute()

    def fetch_period_summaries(self, period: BudgetPeriod) -> List[Dict[str, Any]]:
        response = (
            self.client.table(SUMMARY_TABLE)
            .select("*")
            .eq("period_start_date", period.start_iso)
            .eq("period_end_date", period.end_iso)
            .execute()
        )
        return response.data or []

    def list_summary_periods(self) -> List[Dict[str, Any]]:
        response = (
            self.client.table(SUMMARY_TABLE)
            .select("period_start_date, period_end_date")
            .order("period_start_date", desc=True)
            .execute()
        )
        return response.data or []

    # --- budget rows ---

    def find_budget(self, period_start: str, subcategory_id: str) -> Optional[Dict[str, Any]]:
        return self._first(
            self.client.table("budgets")
            .select("*")
            .eq("period_start_date", period_start)
            .eq("subcategory_id", subcategory_id)
        )

    def insert_budget(self, row: Dict[str, Any]) -> Dict[str, Any]:
        response = self.client.table("budgets").insert(row).execute()
        return response.data[0] if response.data else row

    def update_budget(self, budget_id, changes: Dict[str, Any]) -> None:
        self.client.table("budgets").update(changes).eq("id", budget_id).execute()

    def latest_budget_before(self, subcategory_id: str, before: str) -> Optional[Dict[str, Any]]:
        return self._first(
            self.client.table("budgets")
            .select("amount, period_start_date")
            .eq("subcategory_id", subcategory_id)
            .lt("period_start_date", before)
            .order("period_start_date", desc=True)
        )

    # --- categories (current tables first, legacy fallback) ---

    def categories(self) -> List[Dict[str, Any]]:
        rows = self.client.table("categories").select("*").order("name").execute().data
        if rows:
            return rows
        return self._legacy_rows(
            lambda: self.client.table("main_categories").select("id, name").order("name")
        )

    def subcategories(self, category_id: str) -> List[Dict[str, Any]]:
        rows = (
            self.client.table("subcategories")
            .select("*")
            .eq("category_id", category_id)
            .order("name")
            .execute()
            .data
        )
        if rows:
            return rows
        return self._legacy_rows(
            lambda: self.client.table("categories_with_hierarchy")
            .select("id, name")
            .eq("parent_id", category_id)
            .order("name")
        )

    def category_names(self) -> Dict[str, str]:
        names = {
            row["id"]: row["name"]
            for row in self._legacy_rows(lambda: self.client.table("main_categories").select("id, name"))
        }
        for row in self.client.table("categories").select("id, name").execute().data or []:
            names[row["id"]] = row["name"]
        return names

    def subcategory_index(self) -> Dict[str, Dict[str, Any]]:
        """Map subcategory id -> {name, category_id} across both generations."""
        index = {
            row["id"]: {"name": row.get("name"), "category_id": row.get("parent_id")}
            for row in self._legacy_rows(
                lambda: self.client.table("categories_with_hierarchy").select("id, name, parent_id")
            )
        }
        for row in (
            self.client.table("subcategories").select("id, name, category_id").execute().data or []
        ):
            index[row["id"]] = {"name": row.get("name"), "category_id": row.get("category_id")}
        return index

    # --- funding sources ---

    def sources_of_funds(self) -> List[Dict[str, Any]]:
        return self.client.table("source_of_funds").select("id, name").order("name").execute().data or []

    def source_of_fund_names(self) -> Dict[str, str]:
        return {row["id"]: row["name"] for row in self.sources_of_funds()}

    # --- transactions (bot actions) ---

    def get_transaction(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        return self._first(self.client.table("transactions").select("*").eq("id", transaction_id))

    def pending_transactions(self, limit: int = 5) -> List[Dict[str, Any]]:
        response = (
            self.client.table("transactions")
            .select("*")
            .eq("status", "pending")
            .order("happened_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []

    def insert_transaction(self, row: Dict[str, Any]) -> Dict[str, Any]:
        response = self.client.table("transactions").insert(row).execute()
        return response.data[0] if response.data else row

    def update_transaction(self, transaction_id: str, changes: Dict[str, Any]) -> None:
        self.client.table("transactions").update(changes).eq("id", transaction_id).execute()
