"""Bot service — command, free-text and callback handling for the Telegram webhook.

Every handler answers in chat; nothing here raises to the webhook except
genuinely unexpected errors, which the router logs and swallows.
"""

import re
from datetime import date, datetime, time
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import structlog
from supabase import Client

from apps.api.core.config import Settings
from apps.api.domains.bot import views
from apps.api.domains.bot.sessions import BotSession, SessionStore
from apps.api.domains.bot.states import (
    AwaitingAmount,
    AwaitingBudgetAmount,
    AwaitingDate,
    AwaitingDirection,
    AwaitingEditAmount,
    AwaitingEditDate,
    AwaitingMerchant,
    Idle,
)
from apps.api.domains.budgets.service import build_engine
from apps.api.telegram_client import TelegramClient
from packages.budgeting import (
    BudgetPeriod,
    BudgetValidationError,
    LedgerReadError,
    ReportService,
    current_period,
    period_containing,
)
from packages.budgeting.aggregation import is_uuid
from packages.budgeting.formatting import format_idr, format_period, format_period_date
from packages.budgeting.periods import local_today
from packages.budgeting.records import transaction_from_row

logger = structlog.get_logger()

MENU_COMMANDS = {
    "period": "/period",
    "today": "/today",
    "budget": "/budget",
    "pending": "/pending",
    "recalculate": "/recalculate",
}

SAME_AS_BEFORE = ("same", "sama")


def parse_amount(text: str) -> Optional[int]:
    """'Rp 50.000' -> 50000; None when there are no digits or the value is 0."""
    digits = re.sub(r"[^0-9]", "", text or "")
    if not digits:
        return None
    value = int(digits)
    return value or None


def parse_entry_date(text: str, tz: str) -> Optional[date]:
    value = (text or "").strip().lower()
    if value in ("today", "hari ini"):
        return local_today(tz=tz)
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


class BotService:
    def __init__(self, client: Client, telegram: TelegramClient, settings: Settings):
        self.client = client
        self.telegram = telegram
        self.settings = settings
        self.tz = settings.LEDGER_TIMEZONE
        self.sessions = SessionStore(client)
        self.engine = build_engine(client, settings)
        self.store = self.engine.store
        self.reports = ReportService(self.store, self.engine)

    async def handle_update(self, update: Dict[str, Any]) -> None:
        if update.get("callback_query"):
            await self.handle_callback(update["callback_query"])
        elif update.get("message"):
            await self.handle_message(update["message"])
        else:
            logger.debug("telegram_update_ignored", update_id=update.get("update_id"))

    # --- messages ---

    async def handle_message(self, message: Dict[str, Any]) -> None:
        chat_id = message["chat"]["id"]
        user_id = (message.get("from") or {}).get("id", chat_id)
        text = (message.get("text") or "").strip()

        session = self.sessions.load(chat_id, user_id)

        command = self._as_command(text)
        if command:
            self.sessions.reset(session)
            await self.handle_command(chat_id, command, text, session)
            return

        if not isinstance(session.state, Idle):
            await self.handle_state_input(chat_id, text, session)
            return

        await self.telegram.send_message(chat_id, views.HELP_TEXT)

    @staticmethod
    def _as_command(text: str) -> Optional[str]:
        if text.startswith("/"):
            # "/budget@WalleBot args" -> "/budget"
            return text.split()[0].split("@")[0].lower()
        return MENU_COMMANDS.get(text.lower())

    async def handle_command(self, chat_id, command: str, text: str, session: BotSession) -> None:
        logger.info("bot_command", chat_id=chat_id, command=command)
        try:
            if command == "/start":
                await self.telegram.send_message(
                    chat_id,
                    "Welcome to WalleTracker! 🤖💰\nSelect an option below:",
                    reply_markup=views.main_menu(),
                )
            elif command == "/new":
                self.sessions.save(session, AwaitingAmount())
                await self.telegram.send_message(chat_id, "Enter amount (e.g. 50000):")
            elif command == "/pending":
                await self.show_pending(chat_id)
            elif command == "/period":
                await self.show_period_menu(chat_id)
            elif command == "/today":
                await self.show_today(chat_id)
            elif command in ("/budget", "/month"):
                await self.show_budget_categories(chat_id)
            elif command == "/recalculate":
                await self.recalculate(chat_id)
            elif command == "/setmenu":
                await self.telegram.set_my_commands(views.BOT_COMMANDS)
                await self.telegram.set_chat_menu_button(chat_id)
                await self.telegram.send_message(chat_id, "✅ Menu commands updated and button reset to 'Menu'.")
            elif command == "/resetmenu":
                await self.telegram.set_chat_menu_button(chat_id)
                await self.telegram.send_message(chat_id, "✅ Menu button reset to standard Commands list.")
            elif command == "/setwebapp":
                parts = text.split()
                url = parts[1] if len(parts) > 1 else ""
                if not url.startswith("https://"):
                    await self.telegram.send_message(
                        chat_id, "Please provide the Web App URL. Usage: /setwebapp https://your-app.com"
                    )
                    return
                await self.telegram.set_chat_menu_button(chat_id, url)
                await self.telegram.send_message(chat_id, "✅ Web App button set! Restart Telegram to see it.")
            else:
                await self.telegram.send_message(chat_id, "Unknown command.")
        except LedgerReadError as e:
            logger.error("bot_command_failed", command=command, error=str(e))
            await self.telegram.send_message(chat_id, f"⚠️ Error processing command: {e}")

    async def handle_state_input(self, chat_id, text: str, session: BotSession) -> None:
        state = session.state

        if isinstance(state, AwaitingAmount):
            amount = parse_amount(text)
            if amount is None:
                await self.telegram.send_message(chat_id, "Invalid amount. Please enter a number.")
                return
            self.sessions.save(session, AwaitingDirection(amount=amount))
            await self.telegram.send_message(
                chat_id, "Is this an expense or income?", reply_markup=views.direction_keyboard()
            )

        elif isinstance(state, AwaitingDirection):
            await self.telegram.send_message(
                chat_id, "Please pick Expense or Income using the buttons.", reply_markup=views.direction_keyboard()
            )

        elif isinstance(state, AwaitingMerchant):
            if not text:
                await self.telegram.send_message(chat_id, "Please enter a merchant name.")
                return
            self.sessions.save(
                session, AwaitingDate(amount=state.amount, direction=state.direction, merchant=text)
            )
            await self.telegram.send_message(chat_id, "Enter date (YYYY-MM-DD) or type 'today':")

        elif isinstance(state, AwaitingDate):
            day = parse_entry_date(text, self.tz)
            if day is None:
                await self.telegram.send_message(chat_id, "Invalid date. Use YYYY-MM-DD or type 'today'.")
                return
            await self.save_manual_transaction(chat_id, session, state, day)

        elif isinstance(state, AwaitingBudgetAmount):
            await self.save_budget_input(chat_id, text, session, state)

        elif isinstance(state, AwaitingEditAmount):
            amount = parse_amount(text)
            if amount is None:
                await self.telegram.send_message(chat_id, "Invalid amount. Please enter a number.")
                return
            self.store.update_transaction(state.transaction_id, {"amount": amount})
            self.sessions.save(session, Idle())
            self._refresh_summary_for(state.transaction_id)
            await self.telegram.send_message(chat_id, f"✅ Amount updated to {format_idr(amount)}.")

        elif isinstance(state, AwaitingEditDate):
            day = parse_entry_date(text, self.tz)
            if day is None:
                await self.telegram.send_message(chat_id, "Invalid date. Use YYYY-MM-DD or type 'today'.")
                return
            self.move_transaction(state.transaction_id, day)
            self.sessions.save(session, Idle())
            await self.telegram.send_message(chat_id, f"✅ Date updated to {format_period_date(day)}.")

    async def save_manual_transaction(self, chat_id, session: BotSession, state: AwaitingDate, day: date) -> None:
        row = {
            "status": "completed",
            "amount": state.amount,
            "direction": state.direction,
            "merchant": state.merchant,
            "happened_at": self._timestamp_for(day),
            "source": "manual",
            "currency": self.settings.LEDGER_CURRENCY,
        }
        if self.settings.LEDGER_USER_ID:
            row["user_id"] = self.settings.LEDGER_USER_ID
        try:
            self.store.insert_transaction(row)
        except Exception as e:
            logger.error("manual_transaction_insert_failed", chat_id=chat_id, error=str(e))
            self.sessions.save(session, Idle())
            await self.telegram.send_message(chat_id, f"Error saving: {e}")
            return

        self.sessions.save(session, Idle())
        self._refresh_summary(period_containing(day))
        await self.telegram.send_message(chat_id, "✅ Transaction saved!")

    async def save_budget_input(self, chat_id, text: str, session: BotSession, state: AwaitingBudgetAmount) -> None:
        if text.strip().lower() in SAME_AS_BEFORE:
            amount = state.suggested_amount
        else:
            amount = parse_amount(text)
            if amount is None and text.strip() == "0":
                amount = 0
        if amount is None:
            await self.telegram.send_message(chat_id, "Invalid amount. Please enter a number or 'same'.")
            return

        period = BudgetPeriod.from_iso(state.period_start, state.period_end)
        try:
            self.engine.save_budget(
                period,
                state.subcategory_id,
                amount,
                user_id=self.settings.LEDGER_USER_ID,
                category_type=state.category_type,
            )
        except (BudgetValidationError, LedgerReadError) as e:
            self.sessions.save(session, Idle())
            await self.telegram.send_message(chat_id, f"⚠️ Could not save budget: {e}")
            return

        self.sessions.save(session, Idle())
        await self.telegram.send_message(
            chat_id,
            f"✅ Budget for {state.subcategory_name or 'subcategory'} set to {format_idr(amount)} "
            f"({format_period(period)}).",
        )

    # --- screens ---

    async def show_pending(self, chat_id) -> None:
        pending = self.store.pending_transactions(limit=5)
        if not pending:
            await self.telegram.send_message(chat_id, "No pending transactions! 🎉")
            return
        for tx in pending:
            await self.telegram.send_message(
                chat_id, views.pending_text(tx, self.tz), reply_markup=views.pending_keyboard(tx["id"])
            )

    async def show_period_menu(self, chat_id) -> None:
        periods = self.reports.available_periods()
        if not periods:
            await self.telegram.send_message(chat_id, "No periods found in summary table.")
            return
        years = sorted({p.start.year for p in periods} | {p.end.year for p in periods}, reverse=True)
        await self.telegram.send_message(
            chat_id, "Select Period Option:", reply_markup=views.period_menu(periods[0], years)
        )

    async def show_periods_for_year(self, chat_id, year: int) -> None:
        periods = [
            p for p in self.reports.available_periods(limit=36) if year in (p.start.year, p.end.year)
        ]
        if not periods:
            await self.telegram.send_message(chat_id, f"No periods found in {year}.")
            return
        await self.telegram.send_message(chat_id, f"Periods in {year}:", reply_markup=views.period_list(periods))

    async def show_period_stats(self, chat_id, period: BudgetPeriod) -> None:
        stats = self.reports.period_stats(period)
        await self.telegram.send_message(
            chat_id, views.period_stats_text(stats), reply_markup=views.period_stats_keyboard(period)
        )

    async def show_transactions(self, chat_id, period: BudgetPeriod, kind: str, page: int) -> None:
        listing = self.reports.list_transactions(period, kind, page)
        if not listing["items"]:
            await self.telegram.send_message(chat_id, "No transactions found.")
            return
        await self.telegram.send_message(
            chat_id,
            views.transaction_list_text(listing, period),
            reply_markup=views.transaction_list_keyboard(listing, period),
        )

    async def show_breakdown(self, chat_id, period: BudgetPeriod) -> None:
        breakdown = self.reports.category_breakdown(period)
        await self.telegram.send_message(chat_id, views.breakdown_text(breakdown, period))

    async def show_today(self, chat_id) -> None:
        await self.telegram.send_message(chat_id, views.today_text(self.reports.today_summary()))

    async def show_budget_categories(self, chat_id) -> None:
        categories = self.store.categories()
        if not categories:
            await self.telegram.send_message(chat_id, "No categories found.")
            return
        period = current_period(tz=self.tz)
        await self.telegram.send_message(
            chat_id,
            f"💼 <b>Budget</b> for {format_period(period)}\nSelect Category:",
            reply_markup=views.choice_keyboard(categories, "budget_cat:"),
        )

    async def recalculate(self, chat_id) -> None:
        await self.telegram.send_message(chat_id, "⏳ Recalculating budget summaries... this may take a moment.")
        result = self.engine.recalculate_all()
        if result.failed:
            await self.telegram.send_message(
                chat_id,
                f"⚠️ Updated {len(result.processed)} period summaries, {len(result.failed)} failed. "
                "They will be retried on the next run.",
            )
            return
        await self.telegram.send_message(chat_id, f"✅ Done! Updated {len(result.processed)} period summaries.")

    # --- callbacks ---

    async def handle_callback(self, query: Dict[str, Any]) -> None:
        message = query.get("message") or {}
        chat_id = (message.get("chat") or {}).get("id")
        message_id = message.get("message_id")
        user_id = (query.get("from") or {}).get("id", chat_id)
        data = query.get("data") or ""
        action, _, rest = data.partition(":")
        parts = rest.split(":") if rest else []

        if chat_id is None:
            await self.telegram.answer_callback_query(query["id"], "Message too old.")
            return

        handler = getattr(self, f"_on_{action}", None)
        if handler is None:
            await self.telegram.answer_callback_query(query["id"], "Unknown action.")
            return

        try:
            notice = await handler(chat_id, message_id, user_id, parts)
        except (ValueError, IndexError) as e:
            logger.warning("bot_callback_rejected", action=action, data=data, error=str(e))
            notice = "Invalid selection."
        except LedgerReadError as e:
            logger.error("bot_callback_failed", action=action, error=str(e))
            await self.telegram.send_message(chat_id, f"⚠️ Error: {e}")
            notice = None
        await self.telegram.answer_callback_query(query["id"], notice)

    async def _on_period(self, chat_id, message_id, user_id, parts) -> str:
        await self.show_period_stats(chat_id, BudgetPeriod.from_iso(parts[0], parts[1]))
        return "Loading..."

    async def _on_year_periods(self, chat_id, message_id, user_id, parts) -> str:
        year = int(parts[0])
        await self.show_periods_for_year(chat_id, year)
        return f"Loading {year}..."

    async def _on_list_tx(self, chat_id, message_id, user_id, parts) -> str:
        period = BudgetPeriod.from_iso(parts[0], parts[1])
        page = int(parts[3]) if len(parts) > 3 else 1
        await self.show_transactions(chat_id, period, parts[2], page)
        return "Loading list..."

    async def _on_breakdown(self, chat_id, message_id, user_id, parts) -> str:
        await self.show_breakdown(chat_id, BudgetPeriod.from_iso(parts[0], parts[1]))
        return "Loading..."

    async def _on_tx_confirm(self, chat_id, message_id, user_id, parts) -> str:
        tx_id = self._transaction_id(parts[0])
        self.store.update_transaction(tx_id, {"status": "completed"})
        self._refresh_summary_for(tx_id)
        await self.telegram.edit_message_text(chat_id, message_id, "✅ Transaction confirmed and saved.")
        return "Confirmed!"

    async def _on_tx_reject(self, chat_id, message_id, user_id, parts) -> str:
        tx_id = self._transaction_id(parts[0])
        self.store.update_transaction(tx_id, {"status": "rejected"})
        await self.telegram.edit_message_text(chat_id, message_id, "❌ Transaction rejected.")
        return "Rejected"

    async def _on_tx_cat(self, chat_id, message_id, user_id, parts) -> Optional[str]:
        tx_id = self._transaction_id(parts[0])
        categories = self.store.categories()
        if not categories:
            await self.telegram.send_message(chat_id, "No categories found.")
            return None
        await self.telegram.send_message(
            chat_id,
            "Select Category:",
            reply_markup=views.choice_keyboard(categories, f"set_cat:{views.compact_id(tx_id)}:"),
        )
        return None

    async def _on_set_cat(self, chat_id, message_id, user_id, parts) -> Optional[str]:
        tx_id = self._transaction_id(parts[0])
        category_id = self._row_id(parts[1])
        self.store.update_transaction(tx_id, {"category_id": category_id})
        subcategories = self.store.subcategories(category_id)
        prefix = f"set_sub:{views.compact_id(tx_id)}:"
        await self.telegram.send_message(
            chat_id,
            "Select Subcategory:",
            reply_markup=views.choice_keyboard(
                subcategories, prefix, extra=views.button("Skip Subcategory", f"{prefix}skip")
            ),
        )
        return None

    async def _on_set_sub(self, chat_id, message_id, user_id, parts) -> Optional[str]:
        tx_id = self._transaction_id(parts[0])
        changes: Dict[str, Any] = {"status": "completed"}
        if parts[1] != "skip":
            changes["subcategory_id"] = self._row_id(parts[1])
        self.store.update_transaction(tx_id, changes)
        self._refresh_summary_for(tx_id)
        await self.telegram.edit_message_text(chat_id, message_id, "✅ Transaction categorized and saved!")
        return None

    async def _on_tx_src(self, chat_id, message_id, user_id, parts) -> Optional[str]:
        tx_id = self._transaction_id(parts[0])
        sources = self.store.sources_of_funds()
        if not sources:
            await self.telegram.send_message(chat_id, "No sources of funds found.")
            return None
        await self.telegram.send_message(
            chat_id,
            "Select Source of Funds:",
            reply_markup=views.choice_keyboard(sources, f"set_src:{views.compact_id(tx_id)}:"),
        )
        return None

    async def _on_set_src(self, chat_id, message_id, user_id, parts) -> str:
        tx_id = self._transaction_id(parts[0])
        source_id = self._row_id(parts[1])
        self.store.update_transaction(tx_id, {"source_of_fund_id": source_id})
        name = self.store.source_of_fund_names().get(source_id, "selected source")
        await self.telegram.edit_message_text(chat_id, message_id, f"✅ Source set to {name}.")
        return "Saved"

    async def _on_tx_amt(self, chat_id, message_id, user_id, parts) -> None:
        session = self.sessions.load(chat_id, user_id)
        self.sessions.save(session, AwaitingEditAmount(transaction_id=self._transaction_id(parts[0])))
        await self.telegram.send_message(chat_id, "Enter the new amount:")

    async def _on_tx_date(self, chat_id, message_id, user_id, parts) -> None:
        session = self.sessions.load(chat_id, user_id)
        self.sessions.save(session, AwaitingEditDate(transaction_id=self._transaction_id(parts[0])))
        await self.telegram.send_message(chat_id, "Enter the new date (YYYY-MM-DD) or type 'today':")

    async def _on_tx_dir(self, chat_id, message_id, user_id, parts) -> Optional[str]:
        direction = parts[0]
        if direction not in ("debit", "credit"):
            raise ValueError(f"Unknown direction {direction!r}")
        session = self.sessions.load(chat_id, user_id)
        if not isinstance(session.state, AwaitingDirection):
            return "This entry has expired. Start again with /new."
        self.sessions.save(session, AwaitingMerchant(amount=session.state.amount, direction=direction))
        await self.telegram.send_message(chat_id, f"Set to {direction.upper()}. Now enter Merchant name:")
        return None

    async def _on_budget_cat(self, chat_id, message_id, user_id, parts) -> Optional[str]:
        category_id = self._row_id(parts[0])
        subcategories = self.store.subcategories(category_id)
        if not subcategories:
            await self.telegram.send_message(chat_id, "No subcategories found for this category.")
            return None
        await self.telegram.send_message(
            chat_id, "Select Subcategory:", reply_markup=views.choice_keyboard(subcategories, "budget_sub:")
        )
        return None

    async def _on_budget_sub(self, chat_id, message_id, user_id, parts) -> Optional[str]:
        subcategory_id = self._row_id(parts[0])
        period = current_period(tz=self.tz)
        info = self.store.subcategory_index().get(subcategory_id, {})
        name = info.get("name") or "subcategory"
        category_type = self._category_type(info.get("category_id"))
        previous = self.engine.previous_budget_amount(subcategory_id, period.start_iso)

        session = self.sessions.load(chat_id, user_id)
        self.sessions.save(
            session,
            AwaitingBudgetAmount(
                period_start=period.start_iso,
                period_end=period.end_iso,
                subcategory_id=subcategory_id,
                subcategory_name=name,
                category_type=category_type,
                suggested_amount=previous,
            ),
        )
        await self.telegram.send_message(
            chat_id,
            f"Enter the budget for <b>{name}</b> ({format_period(period)}).\n"
            f"Previous period: {format_idr(previous)}. Send 'same' to reuse it.",
        )
        return None

    # --- helpers ---

    @staticmethod
    def _row_id(value: str) -> str:
        row_id = views.expand_id(value)
        if not is_uuid(row_id):
            raise ValueError(f"Malformed id {value!r}")
        return row_id

    def _transaction_id(self, value: str) -> str:
        tx_id = self._row_id(value)
        if self.store.get_transaction(tx_id) is None:
            raise ValueError(f"Transaction {tx_id} not found")
        return tx_id

    def _category_type(self, category_id: Optional[str]) -> str:
        for row in self.store.categories():
            if row.get("id") == category_id and str(row.get("type") or "").lower() == "income":
                return "income"
        return "expense"

    def _timestamp_for(self, day: date) -> str:
        zone = ZoneInfo(self.tz)
        if day == local_today(tz=self.tz):
            return datetime.now(zone).isoformat()
        return datetime.combine(day, time(0), tzinfo=zone).isoformat()

    def _refresh_summary(self, period: BudgetPeriod) -> None:
        try:
            self.engine.recalculate_period(period)
        except Exception as e:
            logger.warning("summary_refresh_failed", period_start=period.start_iso, error=str(e))

    def _refresh_summary_for(self, transaction_id: str) -> None:
        row = self.store.get_transaction(transaction_id)
        day = transaction_from_row(row, self.tz).occurred_on if row else None
        if day is not None:
            self._refresh_summary(period_containing(day))

    def move_transaction(self, transaction_id: str, day: date) -> None:
        """Re-date a transaction and refresh the periods it leaves and joins."""
        row = self.store.get_transaction(transaction_id) or {}
        old_day = transaction_from_row(row, self.tz).occurred_on if row else None

        changes: Dict[str, Any] = {"happened_at": self._timestamp_for(day)}
        # `date` wins over `happened_at` when a row carries both
        if row.get("date"):
            changes["date"] = day.isoformat()
        self.store.update_transaction(transaction_id, changes)

        periods = [period_containing(day)]
        if old_day is not None and period_containing(old_day) != periods[0]:
            periods.append(period_containing(old_day))
        for period in periods:
            self._refresh_summary(period)
