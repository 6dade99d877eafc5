from ungbot.bot.accounts import LinkedAccount
from ungbot.bot.keyboards import get_login_keyboard, get_main_menu_keyboard
from ungbot.bot.replies import Reply
from ungbot.config import WEB_APP_URL


def auth_required_reply():
    """Sent when a flow or list needs a linked UNG account."""
    return Reply(
        "🔐 **Connect your UNG account**\n\n"
        "You need to log in before you can use this feature.\n\n"
        f"No account yet? Sign up free at {WEB_APP_URL}/register",
        get_login_keyboard(),
    )


def main_menu_reply(name):
    return Reply(
        "🏠 **Main Menu**\n\n"
        f"Hey {name or 'there'}! 👋\n\n"
        "What would you like to do today?\n\n"
        "💡 __Tip: Use /help for all commands__",
        get_main_menu_keyboard(is_logged_in=True),
    )


async def finalize_login(ctx, data):
    """Exchange email/password for a token and link it to the Telegram user."""
    result = await ctx.api.login(data["email"], data["password"])
    user = result.get("user") or {}

    account = LinkedAccount(
        telegram_id=ctx.user_id,
        api_token=result["access_token"],
        display_name=user.get("name") or ctx.display_name,
        email=user.get("email") or data["email"],
        user_id=user.get("id"),
    )
    await ctx.accounts.link(account)

    reply = main_menu_reply(account.display_name)
    reply.text = "✅ **Account connected!**\n\n" + reply.text
    return reply


async def logout(accounts, user_id):
    if await accounts.unlink(user_id):
        return Reply("👋 You've been logged out. Use /login to connect again.")
    return Reply("You're not logged in.", get_login_keyboard())
