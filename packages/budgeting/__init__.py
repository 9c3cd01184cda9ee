"""
Budgeting package.

Budget periods, the dual-schema ledger record adapter, the Supabase ledger
store, period aggregation and report queries.
"""

from .aggregation import AggregationEngine, RecalculationResult
from .errors import BudgetValidationError, LedgerError, LedgerReadError
from .periods import BudgetPeriod, current_period, period_containing
from .reports import VARIANCE_CONVENTION, ReportService, variance
from .store import SupabaseLedgerStore

__version__ = "0.1.0"

__all__ = [
    "AggregationEngine",
    "BudgetPeriod",
    "BudgetValidationError",
    "LedgerError",
    "LedgerReadError",
    "RecalculationResult",
    "ReportService",
    "SupabaseLedgerStore",
    "VARIANCE_CONVENTION",
    "current_period",
    "period_containing",
    "variance",
]
