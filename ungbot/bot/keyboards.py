from typing import Iterable, List

from ungbot.bot import states
from ungbot.bot.replies import Button, Keyboard
from ungbot.config import WEB_APP_URL


def get_cancel_keyboard() -> Keyboard:
    """Get keyboard with just a cancel button."""
    return [[Button("❌ Cancel", states.Callback.CANCEL)]]


def get_main_menu_keyboard(is_logged_in=False) -> Keyboard:
    """Generate main menu keyboard based on login status."""
    if not is_logged_in:
        return [
            [Button("🔐 Connect Account", states.Callback.LOGIN)],
            [Button("📝 Create Free Account", url=f"{WEB_APP_URL}/register")],
            [Button("📖 Help", states.Callback.HELP)],
        ]
    return [
        [
            Button("📄 New Invoice", states.start_flow("invoice")),
            Button("⏱️ Log Time", states.start_flow("time_log")),
        ],
        [
            Button("👥 Clients", states.action("clients")),
            Button("📋 Contracts", states.action("contracts")),
        ],
        [
            Button("📑 All Invoices", states.action("invoices")),
            Button("💸 Expenses", states.action("expenses")),
        ],
        [
            Button("➕ New Client", states.start_flow("client")),
            Button("🎯 New Gig", states.start_flow("gig")),
        ],
        [
            Button("📊 Dashboard", states.action("dashboard")),
            Button("🔍 Search", states.start_flow("search")),
        ],
    ]


def get_login_keyboard() -> Keyboard:
    return [[Button("🔐 Login", states.Callback.LOGIN)]]


def rows(buttons: Iterable[Button], columns: int = 1) -> Keyboard:
    """Lay buttons out ``columns`` per row."""
    columns = max(1, columns)
    keyboard: List[List[Button]] = []
    for button in buttons:
        if not keyboard or len(keyboard[-1]) >= columns:
            keyboard.append([])
        keyboard[-1].append(button)
    return keyboard
