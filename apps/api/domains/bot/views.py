"""Message texts and keyboards rendered by the bot."""

import base64
import uuid
from html import escape
from typing import Any, Dict, Iterable, List, Optional, Sequence

from packages.budgeting import BudgetPeriod
from packages.budgeting.formatting import (
    format_idr,
    format_number,
    format_period,
    format_period_date,
    format_timestamp,
)
from packages.budgeting.reports import PeriodStats

MAIN_MENU_BUTTONS = ("Period", "Today", "Budget", "Pending", "Recalculate")

BOT_COMMANDS = [
    {"command": "start", "description": "Start & Menu"},
    {"command": "new", "description": "Add a transaction"},
    {"command": "period", "description": "Check Tracker Period"},
    {"command": "today", "description": "Today's Spending"},
    {"command": "budget", "description": "Set a budget for this period"},
    {"command": "pending", "description": "Check Pending Transactions"},
    {"command": "recalculate", "description": "Refresh Data"},
]

HELP_TEXT = "I didn't understand that. Try /pending, /new, /today, /budget or /period."

Keyboard = Dict[str, Any]


def compact_id(value: str) -> str:
    """UUIDs shrink to 22 url-safe characters so two fit in one callback."""
    try:
        raw = uuid.UUID(str(value)).bytes
    except ValueError:
        return str(value)
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def expand_id(value: str) -> str:
    if len(value) == 22:
        try:
            return str(uuid.UUID(bytes=base64.urlsafe_b64decode(value + "==")))
        except (ValueError, TypeError):
            pass
    return value


def button(text: str, data: str) -> Dict[str, str]:
    return {"text": text, "callback_data": data}


def grid(buttons: Iterable[Dict[str, str]], width: int = 2) -> List[List[Dict[str, str]]]:
    rows: List[List[Dict[str, str]]] = []
    for b in buttons:
        if not rows or len(rows[-1]) == width:
            rows.append([])
        rows[-1].append(b)
    return rows


def inline(rows: List[List[Dict[str, str]]]) -> Keyboard:
    return {"inline_keyboard": rows}


def main_menu() -> Keyboard:
    texts = list(MAIN_MENU_BUTTONS)
    return {
        "keyboard": [[{"text": t} for t in texts[i : i + 2]] for i in range(0, len(texts), 2)],
        "resize_keyboard": True,
        "is_persistent": True,
    }


def direction_keyboard() -> Keyboard:
    return inline(
        [
            [button("💸 Expense (Debit)", "tx_dir:debit")],
            [button("💰 Income (Credit)", "tx_dir:credit")],
        ]
    )


def pending_text(tx: Dict[str, Any], tz: str) -> str:
    return (
        "🆕 <b>Pending Transaction</b>\n"
        f"💰 {format_idr(tx.get('amount'), tx.get('currency') or 'IDR')}\n"
        f"🏪 {escape(str(tx.get('merchant') or 'Unknown'))}\n"
        f"📅 {format_timestamp(tx.get('happened_at'), tz)}"
    )


def pending_keyboard(transaction_id: str) -> Keyboard:
    return inline(
        [
            [button("✅ Confirm", f"tx_confirm:{transaction_id}")],
            [
                button("🏷️ Categorize", f"tx_cat:{transaction_id}"),
                button("🏦 Source", f"tx_src:{transaction_id}"),
            ],
            [
                button("✏️ Amount", f"tx_amt:{transaction_id}"),
                button("🕒 Date", f"tx_date:{transaction_id}"),
            ],
            [button("❌ Reject", f"tx_reject:{transaction_id}")],
        ]
    )


def choice_keyboard(rows: Sequence[Dict[str, Any]], prefix: str, extra: Optional[Dict[str, str]] = None) -> Keyboard:
    """Two-column keyboard of named rows; callback is ``prefix`` + compact row id."""
    buttons = [button(str(r.get("name")), f"{prefix}{compact_id(r['id'])}") for r in rows]
    layout = grid(buttons)
    if extra:
        layout.append([extra])
    return inline(layout)


def period_menu(latest: BudgetPeriod, years: Sequence[int]) -> Keyboard:
    rows = [[button(f"⚡️ Latest: {format_period(latest)}", f"period:{latest.start_iso}:{latest.end_iso}")]]
    rows += [[button(f"📅 {year}", f"year_periods:{year}")] for year in years]
    return inline(rows)


def period_list(periods: Sequence[BudgetPeriod]) -> Keyboard:
    return inline([[button(format_period(p), f"period:{p.start_iso}:{p.end_iso}")] for p in periods])


def period_stats_text(stats: PeriodStats) -> str:
    return (
        "📊 <b>Tracker Period Summary</b>\n"
        f"📅 {format_period(stats.period)}\n\n"
        f"💸 <b>Expense:</b> {format_idr(stats.actual_expense)}\n"
        f"   <i>(Budget: {format_idr(stats.budgeted_expense)})</i>\n\n"
        f"💰 <b>Income:</b> {format_idr(stats.actual_income)}\n"
        f"   <i>(Budget: {format_idr(stats.budgeted_income)})</i>\n\n"
        f"📉 <b>Net Flow:</b> {format_idr(stats.net)}"
    )


def period_stats_keyboard(period: BudgetPeriod) -> Keyboard:
    s, e = period.start_iso, period.end_iso
    return inline(
        [
            [
                button("📉 View Expenses", f"list_tx:{s}:{e}:expense:1"),
                button("💰 View Income", f"list_tx:{s}:{e}:income:1"),
            ],
            [button("📊 Budget vs Actual", f"breakdown:{s}:{e}")],
        ]
    )


def _short(text: str, limit: int = 12) -> str:
    return text if len(text) <= limit else text[:limit] + "…"


def transaction_list_text(listing: Dict[str, Any], period: BudgetPeriod) -> str:
    kind = listing["kind"]
    tag = "(Exp)" if kind == "expense" else "(Inc)"
    lines = [
        f"📋 <b>{kind.upper()} List</b> (Page {listing['page']} of {listing['pages']})",
        f"📅 {format_period(period)}",
        f"Total: {format_idr(listing['total_amount'])}",
        "",
    ]
    for item in listing["items"]:
        lines.append(
            f"{escape(_short(item['label']))} | {escape(item['source_of_fund'] or 'Unknown')} | "
            f"{format_number(item['amount'])} | {format_period_date(item['date'])} {tag}"
        )
    return "\n".join(lines)


def transaction_list_keyboard(listing: Dict[str, Any], period: BudgetPeriod) -> Keyboard:
    s, e, kind, page = period.start_iso, period.end_iso, listing["kind"], listing["page"]
    row = []
    if page > 1:
        row.append(button("⬅️ Prev", f"list_tx:{s}:{e}:{kind}:{page - 1}"))
    if page < listing["pages"]:
        row.append(button("Next ➡️", f"list_tx:{s}:{e}:{kind}:{page + 1}"))
    return inline([row] if row else [])


def progress_bar(actual: float, budgeted: float, width: int = 10) -> str:
    pct = round(actual / budgeted * 100) if budgeted > 0 else 0
    filled = min(width, pct // 10)
    return f"{'█' * filled}{'░' * (width - filled)} {pct}%"


def breakdown_text(breakdown: Dict[str, Any], period: BudgetPeriod) -> str:
    totals = breakdown["totals"]
    lines = [
        "📊 <b>Budget vs Actual</b>",
        f"📅 {format_period(period)}",
        f"Spent {format_idr(totals['actual'])} of {format_idr(totals['budgeted'])}",
        f"Remaining: {format_idr(totals['variance'])}",
        "",
    ]
    if not breakdown["lines"]:
        lines.append("No budgets or expenses in this period.")
    for line in breakdown["lines"]:
        lines.append(f"<b>{escape(line['category'])}</b> / {escape(line['subcategory'])}")
        lines.append(progress_bar(line["actual"], line["budgeted"]))
        lines.append(f"{format_number(line['actual'])} / {format_number(line['budgeted'])}")
        lines.append("")
    return "\n".join(lines).rstrip()


def today_text(summary: Dict[str, Any]) -> str:
    lines = ["<b>Today's Spending</b>", f"Total: {format_idr(summary['total'])}", ""]
    if not summary["items"]:
        lines.append("No spending today yet.")
    for item in summary["items"]:
        lines.append(
            f"- {escape(item['category'])}: {format_number(item['amount'])} ({escape(item['label'])})"
        )
    return "\n".join(lines)
