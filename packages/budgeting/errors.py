class LedgerError(Exception):
    """Base error for ledger operations."""


class LedgerReadError(LedgerError):
    """A read from the ledger store failed; the operation was aborted."""


class BudgetValidationError(LedgerError, ValueError):
    """Budget input was rejected before touching the store."""
