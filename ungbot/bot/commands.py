"""
Top-level commands that are not multi-step flows: welcome, help, the
read-only list views, the timer and the dashboard.
"""
from __future__ import annotations

import datetime
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ungbot.api.client import APIError
from ungbot.bot import states
from ungbot.bot.keyboards import get_main_menu_keyboard
from ungbot.bot.replies import Button, Reply
from ungbot.config import WEB_APP_URL

MAX_INVOICES_SHOWN = 10
MAX_EXPENSES_SHOWN = 15
MAX_CLIENTS_SHOWN = 20
MAX_CONTRACTS_SHOWN = 20
MAX_TRACKING_SHOWN = 8
MAX_TOP_CONTRACTS = 5


def welcome_reply() -> Reply:
    text = (
        "🚀 **UNG Bot**\n"
        "__Your Next Gig, Simplified__\n\n"
        "Welcome! I'm your personal billing assistant.\n\n"
        "✨ **What I can do for you:**\n\n"
        "📄 **Invoices** - Create & manage invoices\n"
        "👥 **Clients** - Track your client database\n"
        "⏱️ **Time** - Log hours & track work\n"
        "📋 **Contracts** - Manage agreements\n"
        "💸 **Expenses** - Track your costs\n\n"
        "🔐 **Get Started**\n\n"
        "Connect your UNG account to begin.\n"
        f"No account? Sign up free at:\n{WEB_APP_URL}/register"
    )
    return Reply(text, get_main_menu_keyboard(is_logged_in=False))


def help_reply() -> Reply:
    text = (
        "📖 **UNG Bot - Available Commands**\n\n"
        "**Account:**\n"
        "/login - Connect your UNG account\n"
        "/logout - Disconnect it\n\n"
        "**Create:**\n"
        "/client - New client\n"
        "/company - Your company details\n"
        "/contract - New contract\n"
        "/invoice - New invoice\n"
        "/expense - New expense\n"
        "/log - Log time\n"
        "/gig - New gig\n"
        "/profile - Job hunter profile\n\n"
        "**Timer:**\n"
        "/track - Start the timer\n"
        "/stop - Stop it and record the time\n"
        "/active - Show the running timer\n\n"
        "**View:**\n"
        "/clients - List clients\n"
        "/contracts - List contracts\n"
        "/invoices - List invoices\n"
        "/expenses - List expenses\n"
        "/companies - List companies\n"
        "/tracking - Recent time entries\n"
        "/dashboard - Monthly revenue\n"
        "/search - Search everything\n\n"
        "**While answering:**\n"
        "/skip - Leave an optional field empty\n"
        "/cancel - Stop the current flow\n"
        "/menu - Main menu\n\n"
        f"Need help? Visit {WEB_APP_URL}/help"
    )
    return Reply(text, [[Button("🔙 Menu", states.Callback.MENU)]])


def _money(value: Any) -> str:
    try:
        return f"${float(value):,.2f}"
    except (TypeError, ValueError):
        return "$0.00"


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _more(total: int, shown: int) -> str:
    return f"\n__...and {total - shown} more__\n" if total > shown else ""


# ---------------------------------------------------------------------------
# List views
# ---------------------------------------------------------------------------

def format_clients(clients: List[Dict[str, Any]]) -> Reply:
    if not clients:
        return Reply(
            "You don't have any clients yet.\n\nUse /client to add your first client!",
            [[Button("➕ New Client", states.start_flow("client"))]],
        )
    text = "👥 **Your Clients**\n\n"
    for i, client in enumerate(clients[:MAX_CLIENTS_SHOWN], 1):
        text += f"{i}. **{client.get('name', '')}**\n"
        if client.get("email"):
            text += f"   📧 {client['email']}\n"
    text += _more(len(clients), MAX_CLIENTS_SHOWN)
    text += "\n__Use /client to add a new client__"
    return Reply(text)


def format_contracts(contracts: List[Dict[str, Any]]) -> Reply:
    if not contracts:
        return Reply("You don't have any contracts yet.\n\nUse /contract to create one!")
    text = "📋 **Your Contracts**\n\n"
    for i, contract in enumerate(contracts[:MAX_CONTRACTS_SHOWN], 1):
        text += f"{i}. **{contract.get('name', '')}**\n"
        text += f"   {contract.get('type', '')} · {_money(contract.get('rate'))}"
        if contract.get("status"):
            text += f" · {contract['status']}"
        text += "\n"
    text += _more(len(contracts), MAX_CONTRACTS_SHOWN)
    return Reply(text)


def format_invoices(invoices: List[Dict[str, Any]]) -> Reply:
    if not invoices:
        return Reply(
            "You don't have any invoices yet.\n\nUse /invoice to create your first invoice!",
            [[Button("📄 New Invoice", states.start_flow("invoice"))]],
        )
    text = "📑 **Your Invoices**\n\n"
    for invoice in invoices[:MAX_INVOICES_SHOWN]:
        text += f"**#{invoice.get('invoice_num', invoice.get('id', ''))}** "
        text += f"{_money(invoice.get('amount'))} {invoice.get('currency', 'USD')}"
        if invoice.get("status"):
            text += f" · {invoice['status']}"
        text += "\n"
        if invoice.get("due_date"):
            text += f"   📅 Due {str(invoice['due_date'])[:10]}\n"
    text += _more(len(invoices), MAX_INVOICES_SHOWN)
    return Reply(text)


def format_expenses(expenses: List[Dict[str, Any]]) -> Reply:
    if not expenses:
        return Reply("You don't have any expenses yet.\n\nUse /expense to create your first expense!")
    text = "💰 **Your Expenses**\n\n"
    total = 0.0
    for i, expense in enumerate(expenses[:MAX_EXPENSES_SHOWN], 1):
        text += f"{i}. **{expense.get('description', '')}**\n"
        text += f"   💵 {_money(expense.get('amount'))}\n"
        text += f"   📂 {expense.get('category', '')}\n"
        if expense.get("vendor"):
            text += f"   🏪 {expense['vendor']}\n"
        text += "\n"
        try:
            total += float(expense.get("amount") or 0)
        except (TypeError, ValueError):
            pass
    text += _more(len(expenses), MAX_EXPENSES_SHOWN)
    text += f"**Total:** {_money(total)}\n\n"
    text += "__Use /expense to create a new expense__"
    return Reply(text)


def format_companies(companies: List[Dict[str, Any]]) -> Reply:
    if not companies:
        return Reply("📋 No companies found.\n\nUse /company to create one.")
    text = "🏢 **Your Companies**\n\n"
    for i, company in enumerate(companies, 1):
        text += f"{i}. **{company.get('name', '')}**\n"
        if company.get("email"):
            text += f"   📧 {company['email']}\n"
        if company.get("phone"):
            text += f"   📞 {company['phone']}\n"
        if company.get("tax_id"):
            text += f"   🆔 Tax ID: {company['tax_id']}\n"
        text += "\n"
    return Reply(text)


def format_tracking(entries: List[Dict[str, Any]]) -> Reply:
    if not entries:
        return Reply(
            "⏱️ **Time Tracking**\n\n📭 No sessions recorded yet!\n\nStart tracking your work time.",
            [[Button("▶️ Start Tracking", states.action("track"))]],
        )
    total = sum(_number(e.get("duration")) for e in entries)
    active = sum(1 for e in entries if e.get("active"))

    text = "⏱️ **Time Tracking**\n\n"
    text += f"📊 **Summary**\n├ Sessions: {len(entries)}\n├ Total: **{total:.1f} hours**\n"
    if active:
        text += f"\n🔴 **{active} active session(s)**\n"
    text += "\n📋 **Recent Sessions**\n\n"
    for i, entry in enumerate(entries[:MAX_TRACKING_SHOWN], 1):
        text += "🔴 **ACTIVE SESSION**\n" if entry.get("active") else f"✅ **Session {i}**\n"
        if entry.get("notes"):
            text += f"   📝 {entry['notes']}\n"
        text += f"   🕐 {format_time(entry.get('start_time'))}\n"
        if entry.get("duration"):
            text += f"   ⏳ {_number(entry['duration']):.1f}h\n"
        text += "\n"
    text += _more(len(entries), MAX_TRACKING_SHOWN)
    return Reply(text, [[
        Button("⏱️ Active", states.action("active")),
        Button("🏠 Main Menu", states.Callback.MENU),
    ]])


# ---------------------------------------------------------------------------
# Timer
# ---------------------------------------------------------------------------

def parse_time(raw: Optional[str]) -> Optional[datetime.datetime]:
    if not raw:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def format_time(raw: Optional[str]) -> str:
    if not raw:
        return "N/A"
    parsed = parse_time(raw)
    return parsed.strftime("%b %d, %H:%M") if parsed else str(raw)


async def start_timer(api, token: str) -> Reply:
    for entry in await api.list_tracking(token):
        if entry.get("active"):
            return Reply(
                "⚠️ You already have an active tracking session!\n\n"
                f"Started: {format_time(entry.get('start_time'))}\n"
                f"Notes: {entry.get('notes') or '-'}\n\n"
                "Use /stop to stop the current session first."
            )
    entry = await api.start_tracking(token) or {}
    return Reply(
        "✅ **Time tracking started!**\n\n"
        "⏱️ Timer is now running...\n"
        f"🕐 Started at: {format_time(entry.get('start_time'))}\n\n"
        "__Use /stop to stop tracking__",
        [[Button("⏹️ Stop Tracking", states.action("stop"))]],
    )


async def stop_timer(api, token: str) -> Reply:
    entry = await api.stop_tracking(token) or {}
    text = "✅ **Time tracking stopped!**\n\n"
    text += f"🕐 Started: {format_time(entry.get('start_time'))}\n"
    text += f"🏁 Ended: {format_time(entry.get('end_time'))}\n"
    if entry.get("duration"):
        text += f"⏳ Duration: {_number(entry['duration']):.2f} hours\n"
    if entry.get("notes"):
        text += f"\n📝 Notes: {entry['notes']}\n"
    text += "\n__Your time has been recorded!__"
    return Reply(text)


async def active_timer(api, token: str, now: Optional[datetime.datetime] = None) -> Reply:
    entries = await api.list_tracking(token)
    entry = next((e for e in entries if e.get("active")), None)
    if entry is None:
        return Reply(
            "⏱️ **Active Session**\n\n⚪ No active session\n\nStart tracking your work time!",
            [
                [Button("▶️ Start Tracking", states.action("track"))],
                [Button("🏠 Menu", states.Callback.MENU)],
            ],
        )

    text = "🔴 **TRACKING ACTIVE**\n\n"
    started = parse_time(entry.get("start_time"))
    if started is not None:
        now = now or datetime.datetime.now(datetime.timezone.utc)
        seconds = max(0, int((now - started).total_seconds()))
        hours, rest = divmod(seconds, 3600)
        text += f"⏱️ **Elapsed Time:** `{hours:02d}:{rest // 60:02d}:{rest % 60:02d}`\n\n"
        text += f"🕐 Started: {format_time(entry.get('start_time'))}\n"
        text += f"⏳ Hours: **{seconds / 3600:.2f}**\n"
    if entry.get("notes"):
        text += f"\n📝 Notes: __{entry['notes']}__\n"
    text += "\n💡 __Tap Stop when done__"
    return Reply(text, [
        [Button("⏹️ Stop Tracking", states.action("stop"))],
        [Button("🔄 Refresh", states.action("active")), Button("🏠 Menu", states.Callback.MENU)],
    ])


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

def progress_bar(percentage: float, width: int = 10) -> str:
    filled = min(width, max(0, int(percentage / 10)))
    return "█" * filled + "░" * (width - filled)


async def dashboard(api, token: str) -> Reply:
    data = await api.get_dashboard(token)
    total = _number(data.get("total_monthly_revenue"))
    hourly = _number(data.get("hourly_contracts_revenue"))
    retainer = _number(data.get("retainer_revenue"))
    projects = total - hourly - retainer

    hourly_pct = retainer_pct = project_pct = 0.0
    if total > 0:
        hourly_pct = hourly / total * 100
        retainer_pct = retainer / total * 100
        project_pct = 100 - hourly_pct - retainer_pct

    text = "📊 **Dashboard**\n\n"
    text += f"💰 **Monthly Revenue:** {_money(total)}\n\n"
    text += "📈 **Revenue Breakdown**\n\n"
    text += f"⏰ **Hourly**: {_money(hourly)}\n   {progress_bar(hourly_pct)} {hourly_pct:.0f}%\n\n"
    text += f"🔄 **Retainer**: {_money(retainer)}\n   {progress_bar(retainer_pct)} {retainer_pct:.0f}%\n\n"
    text += f"📁 **Projects**: {_money(projects)}\n   {progress_bar(project_pct)} {project_pct:.0f}%\n\n"

    text += "📋 **Quick Stats**\n\n"
    text += f"⏱️ Projected Hours: **{math.ceil(_number(data.get('projected_hours')))} hrs**\n"
    if _number(data.get("average_hourly_rate")) > 0:
        text += f"💵 Avg Rate: **${_number(data['average_hourly_rate']):.0f}/hr**\n"
    text += f"📝 Active Contracts: **{int(_number(data.get('active_contracts')))}**\n"

    earning = [c for c in data.get("contract_breakdown") or [] if _number(c.get("monthly_revenue")) > 0]
    if earning:
        text += "\n🏆 **Top Contracts**\n\n"
        for contract in earning[:MAX_TOP_CONTRACTS]:
            text += f"**{contract.get('client_name', '')}**\n"
            text += f"   {_money(contract.get('monthly_revenue'))}/mo · {contract.get('contract_type', '')}\n"
        text += _more(len(earning), MAX_TOP_CONTRACTS)

    return Reply(text, [
        [Button("🔄 Refresh", states.action("dashboard")), Button("📑 Invoices", states.action("invoices"))],
        [Button("⏱️ Track Time", states.action("track")), Button("🏠 Menu", states.Callback.MENU)],
    ])


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

View = Callable[[Any, str], Awaitable[Reply]]


def _lister(method: str, formatter: Callable[[List[Dict[str, Any]]], Reply]) -> View:
    async def view(api, token: str) -> Reply:
        return formatter(await getattr(api, method)(token))
    return view


# command -> (view, what to say when the backend call fails)
VIEWS: Dict[str, Tuple[View, str]] = {
    "clients": (_lister("list_clients", format_clients), "Failed to fetch clients"),
    "contracts": (_lister("list_contracts", format_contracts), "Failed to fetch contracts"),
    "invoices": (_lister("list_invoices", format_invoices), "Failed to fetch invoices"),
    "expenses": (_lister("list_expenses", format_expenses), "Failed to fetch expenses"),
    "companies": (_lister("list_companies", format_companies), "Failed to fetch companies"),
    "tracking": (_lister("list_tracking", format_tracking), "Failed to fetch tracking sessions"),
    "track": (start_timer, "Failed to start tracking"),
    "stop": (stop_timer, "Failed to stop tracking"),
    "active": (active_timer, "Failed to fetch tracking sessions"),
    "dashboard": (dashboard, "Failed to fetch dashboard"),
}


async def run_view(api, token: str, name: str) -> Reply:
    view, failure_text = VIEWS[name]
    try:
        return await view(api, token)
    except APIError as e:
        return Reply(f"❌ {failure_text}: {e}")
