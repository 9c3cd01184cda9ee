"""Celery tasks that rebuild period summaries.

Both tasks write through a service-role client and return the
recalculation report. Upsert failures are reported, not raised; a failed
read aborts the run and is retried.
"""

import logging
from typing import Any, Dict

from celery import shared_task

from apps.api.core.auth import get_service_client
from apps.api.core.config import get_settings
from apps.api.domains.budgets.service import build_engine
from packages.budgeting import BudgetPeriod, LedgerReadError

logger = logging.getLogger(__name__)


def _engine():
    return build_engine(get_service_client(), get_settings())


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def recalculate_all_summaries(self) -> Dict[str, Any]:
    """Recompute the summary of every budgeted period."""
    try:
        result = _engine().recalculate_all()
    except LedgerReadError as e:
        logger.error(f"Full recalculation aborted: {e}")
        raise self.retry(exc=e)

    if result.failed:
        logger.warning(f"{len(result.failed)} period summaries failed; next run retries them")
    return result.to_dict()


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def recalculate_period_summary(self, start: str, end: str) -> Dict[str, Any]:
    """Recompute the summaries of one period ``start``..``end`` (ISO dates)."""
    period = BudgetPeriod.from_iso(start, end)
    try:
        result = _engine().recalculate_period(period)
    except LedgerReadError as e:
        logger.error(f"Recalculation of {start}..{end} aborted: {e}")
        raise self.retry(exc=e)
    return result.to_dict()
