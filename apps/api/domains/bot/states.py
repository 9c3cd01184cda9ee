"""Typed conversation states for the Telegram bot.

Each state carries exactly the data its next step needs. A session row
stores the ``kind`` in ``bot_sessions.state`` and the remaining fields in
``bot_sessions.context``.
"""

import logging
from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

Direction = Literal["debit", "credit"]


class Idle(BaseModel):
    kind: Literal["idle"] = "idle"


class AwaitingAmount(BaseModel):
    kind: Literal["await_amount"] = "await_amount"


class AwaitingDirection(BaseModel):
    kind: Literal["await_direction"] = "await_direction"
    amount: int


class AwaitingMerchant(BaseModel):
    kind: Literal["await_merchant"] = "await_merchant"
    amount: int
    direction: Direction


class AwaitingDate(BaseModel):
    kind: Literal["await_date"] = "await_date"
    amount: int
    direction: Direction
    merchant: str


class AwaitingBudgetAmount(BaseModel):
    kind: Literal["await_budget_amount"] = "await_budget_amount"
    period_start: str
    period_end: str
    subcategory_id: str
    subcategory_name: str = ""
    category_type: Literal["expense", "income"] = "expense"
    suggested_amount: float = 0


class AwaitingEditAmount(BaseModel):
    kind: Literal["await_edit_amount"] = "await_edit_amount"
    transaction_id: str


class AwaitingEditDate(BaseModel):
    kind: Literal["await_edit_date"] = "await_edit_date"
    transaction_id: str


BotState = Annotated[
    Union[
        Idle,
        AwaitingAmount,
        AwaitingDirection,
        AwaitingMerchant,
        AwaitingDate,
        AwaitingBudgetAmount,
        AwaitingEditAmount,
        AwaitingEditDate,
    ],
    Field(discriminator="kind"),
]

_state_adapter = TypeAdapter(BotState)


def state_from_row(state: Optional[str], context: Optional[Mapping[str, Any]]):
    """Rebuild a typed state from a stored session; anything unreadable is Idle."""
    if not state or state == "idle":
        return Idle()
    try:
        return _state_adapter.validate_python({**(context or {}), "kind": state})
    except PydanticValidationError as e:
        logger.warning("Discarding unreadable bot session state %r: %s", state, e)
        return Idle()


def state_to_row(state: BaseModel) -> Dict[str, Any]:
    return {"state": state.kind, "context": state.model_dump(exclude={"kind"})}
