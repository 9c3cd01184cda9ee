"""Pydantic schemas for the budgets domain."""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class BudgetIn(BaseModel):
    """One budget line for a subcategory in a period."""

    subcategory_id: str
    amount: float = Field(..., ge=0, allow_inf_nan=False, description="Non-negative budget amount")
    period_start: Optional[str] = Field(
        default=None,
        description="Any date inside the target period (YYYY-MM-DD); defaults to the current period",
    )
    category_type: Literal["expense", "income"] = "expense"
    user_id: Optional[str] = None


class PreviousBudgetOut(BaseModel):
    subcategory_id: str
    before: str
    amount: float
