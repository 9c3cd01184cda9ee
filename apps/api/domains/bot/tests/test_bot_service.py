"""Tests for bot commands, conversation flows and callbacks."""

import uuid

import pytest

from apps.api.core.config import Settings
from apps.api.domains.bot.service import BotService, parse_amount
from apps.api.domains.bot.sessions import SessionStore
from apps.api.domains.bot.states import AwaitingBudgetAmount, AwaitingDirection, Idle
from apps.api.domains.bot.views import compact_id, expand_id
from apps.api.telegram_client import TelegramClient
from packages.budgeting import current_period

CHAT = 42
USER = 7
OWNER = "00000000-0000-0000-0000-000000000001"
CAT_FOOD = "c0000000-0000-0000-0000-000000000001"
SUB_COFFEE = "5b000000-0000-0000-0000-000000000001"


class RecordingTelegram(TelegramClient):
    def __init__(self):
        super().__init__("test-token")
        self.sent = []

    async def call(self, method, payload):
        self.sent.append((method, payload))
        return {"ok": True}

    def texts(self):
        return [p["text"] for m, p in self.sent if m in ("sendMessage", "editMessageText")]

    def answers(self):
        return [p.get("text") for m, p in self.sent if m == "answerCallbackQuery"]

    def last_keyboard(self):
        for method, payload in reversed(self.sent):
            if method == "sendMessage" and "reply_markup" in payload:
                return payload["reply_markup"]
        return None


def message(text):
    return {"update_id": 1, "message": {"message_id": 10, "chat": {"id": CHAT}, "from": {"id": USER}, "text": text}}


def callback(data):
    return {
        "update_id": 2,
        "callback_query": {
            "id": "cb-1",
            "from": {"id": USER},
            "message": {"message_id": 11, "chat": {"id": CHAT}},
            "data": data,
        },
    }


def callback_data(keyboard):
    return [b["callback_data"] for row in keyboard["inline_keyboard"] for b in row]


@pytest.fixture
def telegram():
    return RecordingTelegram()


@pytest.fixture
def bot(fake_supabase, telegram):
    settings = Settings(
        _env_file=None, SUPABASE_URL="https://test.supabase.co", TELEGRAM_CHAT_ID=str(CHAT), LEDGER_USER_ID=OWNER
    )
    return BotService(fake_supabase, telegram, settings)


@pytest.fixture
def pending_tx(fake_supabase):
    tx_id = str(uuid.uuid4())
    fake_supabase.seed(
        "transactions",
        [{"id": tx_id, "status": "pending", "amount": 35000, "direction": "debit",
          "merchant": "GoFood", "happened_at": "2025-01-05T10:00:00+07:00"}],
    )
    return tx_id


@pytest.fixture
def food_categories(fake_supabase):
    fake_supabase.seed("categories", [{"id": CAT_FOOD, "name": "Food", "type": "expense"}])
    fake_supabase.seed("subcategories", [{"id": SUB_COFFEE, "name": "Coffee", "category_id": CAT_FOOD}])


def session_state(fake_supabase):
    return SessionStore(fake_supabase).load(CHAT, USER).state


def test_parse_amount():
    assert parse_amount("Rp 50.000") == 50000
    assert parse_amount("abc") is None
    assert parse_amount("0") is None


def test_compact_ids_roundtrip():
    value = str(uuid.uuid4())
    assert len(compact_id(value)) == 22
    assert expand_id(compact_id(value)) == value
    assert expand_id("skip") == "skip"


@pytest.mark.asyncio
async def test_start_shows_main_menu(bot, telegram):
    await bot.handle_update(message("/start"))

    method, payload = telegram.sent[-1]
    assert method == "sendMessage"
    assert payload["reply_markup"]["keyboard"][0][0] == {"text": "Period"}


@pytest.mark.asyncio
async def test_manual_entry_flow(bot, telegram, fake_supabase):
    await bot.handle_update(message("/new"))
    await bot.handle_update(message("50.000"))
    assert isinstance(session_state(fake_supabase), AwaitingDirection)

    await bot.handle_update(callback("tx_dir:debit"))
    await bot.handle_update(message("Kopi Kenangan"))
    await bot.handle_update(message("2025-01-10"))

    [tx] = fake_supabase.tables["transactions"]
    assert tx["amount"] == 50000
    assert tx["direction"] == "debit"
    assert tx["merchant"] == "Kopi Kenangan"
    assert tx["status"] == "completed"
    assert tx["source"] == "manual"
    assert tx["currency"] == "IDR"
    assert tx["user_id"] == OWNER
    assert tx["happened_at"] == "2025-01-10T00:00:00+07:00"
    assert telegram.texts()[-1] == "✅ Transaction saved!"
    assert session_state(fake_supabase) == Idle()


@pytest.mark.asyncio
async def test_unconfigured_owner_is_left_empty(fake_supabase, telegram):
    settings = Settings(_env_file=None, SUPABASE_URL="https://test.supabase.co")
    bot = BotService(fake_supabase, telegram, settings)
    fake_supabase.seed(
        "budgets",
        [{"user_id": None, "period_start_date": "2025-01-03", "period_end_date": "2025-02-02",
          "subcategory_id": SUB_COFFEE, "category_type": "expense", "amount": 100000}],
    )

    await bot.handle_update(message("/new"))
    await bot.handle_update(message("20000"))
    await bot.handle_update(callback("tx_dir:debit"))
    await bot.handle_update(message("Warung"))
    await bot.handle_update(message("2025-01-10"))
    await bot.handle_update(message("/recalculate"))
    await bot.handle_update(message("/recalculate"))

    [tx] = fake_supabase.tables["transactions"]
    assert "user_id" not in tx
    [summary] = fake_supabase.tables["period_summaries"]
    assert summary["user_id"] is None
    assert summary["total_actual_expense"] == 20000


@pytest.mark.asyncio
async def test_invalid_amount_keeps_waiting(bot, telegram, fake_supabase):
    await bot.handle_update(message("/new"))
    await bot.handle_update(message("lots"))

    assert telegram.texts()[-1].startswith("Invalid amount")
    assert session_state(fake_supabase).kind == "await_amount"


@pytest.mark.asyncio
async def test_invalid_date_keeps_waiting(bot, telegram, fake_supabase):
    await bot.handle_update(message("/new"))
    await bot.handle_update(message("1000"))
    await bot.handle_update(callback("tx_dir:credit"))
    await bot.handle_update(message("Salary"))
    await bot.handle_update(message("10/01/2025"))

    assert telegram.texts()[-1].startswith("Invalid date")
    assert fake_supabase.tables["transactions"] == []


@pytest.mark.asyncio
async def test_command_resets_conversation(bot, fake_supabase):
    await bot.handle_update(message("/new"))
    await bot.handle_update(message("/today"))

    assert session_state(fake_supabase) == Idle()


@pytest.mark.asyncio
async def test_direction_without_entry_expires(bot, telegram):
    await bot.handle_update(callback("tx_dir:debit"))

    assert telegram.answers()[-1] == "This entry has expired. Start again with /new."


@pytest.mark.asyncio
async def test_idle_text_gets_help(bot, telegram):
    await bot.handle_update(message("hello"))
    assert telegram.texts()[-1].startswith("I didn't understand that")


@pytest.mark.asyncio
async def test_unknown_command(bot, telegram):
    await bot.handle_update(message("/frobnicate"))
    assert telegram.texts()[-1] == "Unknown command."


@pytest.mark.asyncio
async def test_menu_button_runs_today(bot, telegram):
    await bot.handle_update(message("Today"))
    assert "Today's Spending" in telegram.texts()[-1]


@pytest.mark.asyncio
async def test_pending_lists_with_actions(bot, telegram, pending_tx):
    await bot.handle_update(message("/pending"))

    data = callback_data(telegram.last_keyboard())
    assert f"tx_confirm:{pending_tx}" in data
    assert f"tx_reject:{pending_tx}" in data


@pytest.mark.asyncio
async def test_no_pending(bot, telegram):
    await bot.handle_update(message("/pending"))
    assert telegram.texts()[-1] == "No pending transactions! 🎉"


@pytest.mark.asyncio
async def test_confirm_and_reject(bot, telegram, fake_supabase, pending_tx):
    await bot.handle_update(callback(f"tx_confirm:{pending_tx}"))

    assert fake_supabase.tables["transactions"][0]["status"] == "completed"
    assert telegram.answers()[-1] == "Confirmed!"

    await bot.handle_update(callback(f"tx_reject:{pending_tx}"))
    assert fake_supabase.tables["transactions"][0]["status"] == "rejected"


@pytest.mark.asyncio
async def test_malformed_transaction_id(bot, telegram, fake_supabase):
    await bot.handle_update(callback("tx_confirm:not-a-uuid"))

    assert telegram.answers()[-1] == "Invalid selection."
    assert ("update", "transactions") not in fake_supabase.writes()


@pytest.mark.asyncio
async def test_unknown_transaction(bot, telegram):
    await bot.handle_update(callback(f"tx_confirm:{uuid.uuid4()}"))
    assert telegram.answers()[-1] == "Invalid selection."


@pytest.mark.asyncio
async def test_categorize_flow(bot, telegram, fake_supabase, pending_tx, food_categories):
    await bot.handle_update(callback(f"tx_cat:{pending_tx}"))
    [set_cat] = callback_data(telegram.last_keyboard())
    assert set_cat == f"set_cat:{compact_id(pending_tx)}:{compact_id(CAT_FOOD)}"
    assert len(set_cat.encode()) <= 64

    await bot.handle_update(callback(set_cat))
    tx = fake_supabase.tables["transactions"][0]
    assert tx["category_id"] == CAT_FOOD
    set_sub, skip = callback_data(telegram.last_keyboard())
    assert skip.endswith(":skip")

    await bot.handle_update(callback(set_sub))
    tx = fake_supabase.tables["transactions"][0]
    assert tx["subcategory_id"] == SUB_COFFEE
    assert tx["status"] == "completed"
    assert telegram.texts()[-1] == "✅ Transaction categorized and saved!"


@pytest.mark.asyncio
async def test_set_source(bot, telegram, fake_supabase, pending_tx):
    source_id = str(uuid.uuid4())
    fake_supabase.seed("source_of_funds", [{"id": source_id, "name": "BCA"}])

    await bot.handle_update(callback(f"tx_src:{pending_tx}"))
    [set_src] = callback_data(telegram.last_keyboard())
    await bot.handle_update(callback(set_src))

    assert fake_supabase.tables["transactions"][0]["source_of_fund_id"] == source_id
    assert telegram.texts()[-1] == "✅ Source set to BCA."


@pytest.mark.asyncio
async def test_edit_amount(bot, telegram, fake_supabase, pending_tx):
    await bot.handle_update(callback(f"tx_amt:{pending_tx}"))
    await bot.handle_update(message("120.000"))

    assert fake_supabase.tables["transactions"][0]["amount"] == 120000
    assert telegram.texts()[-1] == "✅ Amount updated to Rp 120.000."
    assert session_state(fake_supabase) == Idle()


@pytest.mark.asyncio
async def test_edit_date(bot, telegram, fake_supabase, pending_tx):
    await bot.handle_update(callback(f"tx_date:{pending_tx}"))
    await bot.handle_update(message("2025-01-07"))

    assert fake_supabase.tables["transactions"][0]["happened_at"] == "2025-01-07T00:00:00+07:00"


@pytest.mark.parametrize(
    "row",
    [
        {"happened_at": "2025-01-10T09:00:00+07:00"},
        {"date": "2025-01-10", "happened_at": "2025-01-10T09:00:00+07:00"},
    ],
    ids=["happened_at_only", "date_and_happened_at"],
)
@pytest.mark.asyncio
async def test_edit_date_moves_transaction_between_periods(bot, fake_supabase, row):
    tx_id = str(uuid.uuid4())
    fake_supabase.seed(
        "transactions",
        [{"id": tx_id, "status": "completed", "amount": 35000, "direction": "debit", "merchant": "GoFood", **row}],
    )
    fake_supabase.seed(
        "budgets",
        [
            {"user_id": OWNER, "period_start_date": "2025-01-03", "period_end_date": "2025-02-02",
             "subcategory_id": SUB_COFFEE, "category_type": "expense", "amount": 100000},
            {"user_id": OWNER, "period_start_date": "2025-02-03", "period_end_date": "2025-03-02",
             "subcategory_id": SUB_COFFEE, "category_type": "expense", "amount": 100000},
        ],
    )
    bot.engine.recalculate_all()

    await bot.handle_update(callback(f"tx_date:{tx_id}"))
    await bot.handle_update(message("2025-02-10"))

    tx = fake_supabase.tables["transactions"][0]
    assert tx["happened_at"] == "2025-02-10T00:00:00+07:00"
    if "date" in row:
        assert tx["date"] == "2025-02-10"
    actuals = {
        s["period_start_date"]: s["total_actual_expense"] for s in fake_supabase.tables["period_summaries"]
    }
    assert actuals == {"2025-01-03": 0, "2025-02-03": 35000}


@pytest.mark.asyncio
async def test_budget_flow_reuses_previous_amount(bot, telegram, fake_supabase, food_categories):
    period = current_period(tz="Asia/Jakarta")
    previous = period.previous()
    fake_supabase.seed(
        "budgets",
        [{"user_id": OWNER, "period_start_date": previous.start_iso, "period_end_date": previous.end_iso,
          "subcategory_id": SUB_COFFEE, "category_type": "expense", "amount": 75000}],
    )

    await bot.handle_update(message("/budget"))
    [budget_cat] = callback_data(telegram.last_keyboard())
    await bot.handle_update(callback(budget_cat))
    [budget_sub] = callback_data(telegram.last_keyboard())
    await bot.handle_update(callback(budget_sub))

    state = session_state(fake_supabase)
    assert isinstance(state, AwaitingBudgetAmount)
    assert state.subcategory_id == SUB_COFFEE
    assert "Rp 75.000" in telegram.texts()[-1]

    await bot.handle_update(message("same"))

    current = [b for b in fake_supabase.tables["budgets"] if b["period_start_date"] == period.start_iso]
    assert len(current) == 1
    assert current[0]["amount"] == 75000
    assert current[0]["user_id"] == OWNER
    assert telegram.texts()[-1].startswith("✅ Budget for Coffee set to Rp 75.000")
    [summary] = [
        s for s in fake_supabase.tables["period_summaries"] if s["period_start_date"] == period.start_iso
    ]
    assert summary["total_budgeted_expense"] == 75000


@pytest.mark.asyncio
async def test_recalculate_command(bot, telegram, fake_supabase):
    fake_supabase.seed(
        "budgets",
        [{"user_id": OWNER, "period_start_date": "2025-01-03", "period_end_date": "2025-02-02",
          "subcategory_id": SUB_COFFEE, "category_type": "expense", "amount": 100000}],
    )

    await bot.handle_update(message("/recalculate"))

    assert telegram.texts()[-1] == "✅ Done! Updated 1 period summaries."
    assert len(fake_supabase.tables["period_summaries"]) == 1


@pytest.mark.asyncio
async def test_period_menu_and_stats(bot, telegram, fake_supabase):
    await bot.handle_update(message("/period"))
    assert telegram.texts()[-1] == "No periods found in summary table."

    fake_supabase.seed(
        "period_summaries",
        [{"user_id": OWNER, "period_start_date": "2025-01-03", "period_end_date": "2025-02-02",
          "total_budgeted_expense": 100000, "total_budgeted_income": 0,
          "total_actual_expense": 40000, "total_actual_income": 0}],
    )
    await bot.handle_update(message("/period"))
    data = callback_data(telegram.last_keyboard())
    assert data == ["period:2025-01-03:2025-02-02", "year_periods:2025"]

    await bot.handle_update(callback(data[0]))
    assert "Rp 40.000" in telegram.texts()[-1]
    assert "list_tx:2025-01-03:2025-02-02:expense:1" in callback_data(telegram.last_keyboard())


@pytest.mark.asyncio
async def test_transaction_list_unknown_kind(bot, telegram):
    await bot.handle_update(callback("list_tx:2025-01-03:2025-02-02:transfer:1"))
    assert telegram.answers()[-1] == "Invalid selection."


@pytest.mark.asyncio
async def test_unknown_callback_action(bot, telegram):
    await bot.handle_update(callback("launch_rockets:now"))
    assert telegram.answers()[-1] == "Unknown action."


@pytest.mark.asyncio
async def test_setwebapp_requires_https(bot, telegram):
    await bot.handle_update(message("/setwebapp http://example.com"))
    assert telegram.texts()[-1].startswith("Please provide the Web App URL")

    await bot.handle_update(message("/setwebapp https://example.com"))
    methods = [m for m, _ in telegram.sent]
    assert "setChatMenuButton" in methods
