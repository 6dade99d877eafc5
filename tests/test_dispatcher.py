import datetime

import pytest

from ungbot.api.client import APIError
from ungbot.bot import states
from ungbot.bot.dispatcher import (
    NOT_UNDERSTOOD,
    SESSION_LOST_FOR,
    UNKNOWN_COMMAND,
    Dispatcher,
    InboundMessage,
)
from ungbot.bot.session_manager import SessionStore

USER_ID = 1001
OTHER_USER = 2002


# ---------------------------------------------------------------------------
# Client flow
# ---------------------------------------------------------------------------

async def test_client_flow_with_skips_makes_one_call(say, api, sessions, transport):
    await say("/client")
    assert sessions.get(USER_ID).state == "client:name"
    assert "client's name" in transport.last_text

    for text in ("Acme Co", "a@acme.com", "/skip", "/skip"):
        await say(text)

    assert api.creates() == [
        ("create_client", {"name": "Acme Co", "email": "a@acme.com", "address": "", "tax_id": ""}),
    ]
    assert sessions.get(USER_ID) is None
    assert "Client created successfully" in transport.last_text


async def test_invalid_email_reprompts_without_losing_data(say, sessions, transport):
    await say("/client")
    await say("Acme Co")
    await say("not-an-email")

    session = sessions.get(USER_ID)
    assert session.state == "client:email"
    assert session.data == {"name": "Acme Co"}
    assert "Invalid email" in transport.last_text
    assert "client's email" in transport.last_text


async def test_api_failure_is_shown_verbatim_and_session_cleared(say, api, sessions, transport):
    api.fail["create_client"] = APIError('API error: {"success":false,"error":"duplicate email"}')

    await say("/client")
    for text in ("Acme Co", "a@acme.com", "/skip", "/skip"):
        await say(text)

    assert sessions.get(USER_ID) is None
    assert transport.last_text == (
        '❌ Failed to create client: API error: {"success":false,"error":"duplicate email"}'
    )
    assert len(api.creates()) == 1


# ---------------------------------------------------------------------------
# Selection steps
# ---------------------------------------------------------------------------

async def test_invoice_flow_end_to_end(say, press, api, sessions, transport):
    await say("/invoice")
    assert sessions.get(USER_ID).state == "invoice:client_id"
    payloads = transport.callback_data()
    assert "sel:invoice:client_id:7" in payloads
    assert "start:client" in payloads
    assert "cancel" in payloads

    await press("sel:invoice:client_id:7")
    assert sessions.get(USER_ID).state == "invoice:amount"
    assert transport.edits[-1][2].endswith("✅ **Acme Co**")

    await say("abc")
    assert sessions.get(USER_ID).state == "invoice:amount"
    assert "Invalid amount" in transport.last_text

    await say("1500.50")
    session = sessions.get(USER_ID)
    assert session.state == "invoice:description"
    assert session.data["amount"] == 1500.5

    await say("Website redesign")
    assert transport.callback_data()[:3] == [
        "sel:invoice:due_days:7", "sel:invoice:due_days:14", "sel:invoice:due_days:30",
    ]

    await press("sel:invoice:due_days:14")

    due = (datetime.date.today() + datetime.timedelta(days=14)).isoformat()
    assert api.creates() == [("create_invoice", {
        "client_id": 7,
        "amount": 1500.5,
        "currency": "USD",
        "description": "Website redesign",
        "due_date": due,
    })]
    assert sessions.get(USER_ID) is None
    assert "INV-0001" in transport.last_text


async def test_contract_type_button_moves_to_rate(say, press, api, sessions, transport):
    await say("/contract")
    await press("sel:contract:client_id:8")
    await say("Monthly retainer")
    assert sessions.get(USER_ID).state == "contract:type"

    await press("sel:contract:type:hourly")
    session = sessions.get(USER_ID)
    assert session.data["type"] == "hourly"
    assert session.state == "contract:rate"
    assert "hourly rate" in transport.last_text

    await say("150")
    assert api.creates() == [("create_contract", {
        "client_id": 8, "name": "Monthly retainer", "type": "hourly", "rate": 150.0,
    })]


async def test_text_while_waiting_for_button_resends_options(say, sessions, transport):
    await say("/contract")
    await say("Acme Co")
    assert sessions.get(USER_ID).state == "contract:client_id"
    assert "choose one of the options" in transport.last_text
    assert "sel:contract:client_id:7" in transport.callback_data()


async def test_stale_button_is_rejected(say, press, sessions, transport):
    await say("/contract")
    await press("sel:contract:client_id:7")
    await press("sel:contract:client_id:8")

    session = sessions.get(USER_ID)
    assert session.state == "contract:name"
    assert session.data["client_id"] == 7
    assert transport.answers[-1][1] == "This button is no longer active."


async def test_button_without_session_asks_to_restart(press, api, transport):
    await press("sel:contract:type:hourly")
    assert transport.answers[-1] == ("cb1", "Session expired. Please start again with /contract", True)
    assert api.creates() == []


async def test_no_clients_ends_flow_with_hint(say, api, sessions, transport):
    api.clients = []
    await say("/invoice")
    assert sessions.get(USER_ID) is None
    assert "create a client first" in transport.last_text


async def test_option_loader_failure_clears_session(say, api, sessions, transport):
    api.fail["list_clients"] = APIError("API error: unauthorized")
    await say("/contract")
    assert sessions.get(USER_ID) is None
    assert transport.last_text == "❌ Failed to create contract: API error: unauthorized"


async def test_time_log_flow(say, press, api, transport):
    await say("/log")
    await press("sel:time_log:contract:3_9")
    await say("25")
    assert "at most 24" in transport.last_text
    await say("2.5")
    await say("/skip")
    await say("Fixed the header")

    (method, payload), = api.creates()
    assert method == "create_tracking"
    assert payload["contract_id"] == 3
    assert payload["client_id"] == 9
    assert payload["hours"] == 2.5
    assert payload["project_name"] == ""
    assert payload["notes"] == "Fixed the header"
    assert payload["billable"] is True
    start = datetime.datetime.fromisoformat(payload["start_time"])
    end = datetime.datetime.fromisoformat(payload["end_time"])
    assert end - start == datetime.timedelta(hours=2.5)


async def test_time_log_for_contract_without_client(say, press, api, sessions, transport):
    api.contracts = [{"id": 3, "client_id": None, "name": "Internal", "type": "fixed"}]
    await say("/log")
    assert "sel:time_log:contract:3_0" in transport.callback_data()

    await press("sel:time_log:contract:3_0")
    assert transport.answers[-1] == ("cb1", "✅ Internal", False)
    assert sessions.get(USER_ID).state == "time_log:hours"

    await say("1")
    await say("/skip")
    await say("/skip")
    (method, payload), = api.creates()
    assert payload["contract_id"] == 3
    assert payload["client_id"] is None


async def test_expense_flow(say, press, api):
    await say("/expense")
    await say("Team lunch")
    await say("42.50")
    await press("sel:expense:category:meals")
    await say("/skip")

    (method, payload), = api.creates()
    assert method == "create_expense"
    assert payload["description"] == "Team lunch"
    assert payload["amount"] == 42.5
    assert payload["category"] == "meals"
    assert payload["vendor"] == ""


async def test_gig_then_task_via_button(say, press, api, sessions, transport):
    await say("/gig")
    await say("Landing page")
    assert ("create_gig", {"name": "Landing page", "status": "todo", "gig_type": "hourly"}) in api.calls
    assert states.start_flow("gig_task", 99) in transport.callback_data()

    await press("start:gig_task:99")
    assert sessions.get(USER_ID).state == "gig_task:title"
    await say("Write copy")
    assert api.creates()[-1] == ("create_gig_task", {"title": "Write copy", "gig_id": 99})


async def test_hunter_profile_flow(say, api):
    await say("/profile")
    for text in ("Jane Doe", "Senior Go Developer", "Go, React", "85"):
        await say(text)
    assert api.creates() == [("update_hunter_profile", {
        "name": "Jane Doe", "title": "Senior Go Developer",
        "skills": ["Go", "React"], "rate": 85.0, "remote": True,
    })]


async def test_company_flow(say, api):
    await say("/company")
    for text in ("Jane LLC", "billing@jane.dev", "/skip", "1 Main St", "/skip"):
        await say(text)
    assert api.creates() == [("create_company", {
        "name": "Jane LLC", "email": "billing@jane.dev", "phone": "", "address": "1 Main St", "tax_id": "",
    })]


# ---------------------------------------------------------------------------
# Cancellation and one-session-per-user
# ---------------------------------------------------------------------------

async def test_new_command_mid_flow_discards_session(say, api, sessions):
    await say("/client")
    await say("Acme Co")
    await say("/help")
    assert sessions.get(USER_ID) is None
    assert api.creates() == []


async def test_new_flow_replaces_old_data(say, sessions):
    await say("/client")
    await say("Acme Co")
    await say("/expense")
    session = sessions.get(USER_ID)
    assert session.state == "expense:description"
    assert session.data == {}


async def test_cancel_command(say, sessions, transport):
    await say("/client")
    await say("/cancel")
    assert sessions.get(USER_ID) is None
    assert transport.last_text == "❌ Cancelled."


async def test_cancel_button(say, press, sessions, transport):
    await say("/client")
    await press("cancel")
    assert sessions.get(USER_ID) is None
    assert transport.edits[-1][2] == "❌ Cancelled."


async def test_menu_button_clears_session(say, press, sessions, transport):
    await say("/expense")
    await press("menu")
    assert sessions.get(USER_ID) is None
    assert "Main Menu" in transport.last_text


async def test_users_do_not_share_sessions(say, accounts, sessions):
    from ungbot.bot.accounts import LinkedAccount
    await accounts.link(LinkedAccount(OTHER_USER, "tok-other", "Bob"))

    await say("/client")
    await say("/gig", user_id=OTHER_USER)
    await say("Acme Co")

    assert sessions.get(USER_ID).data == {"name": "Acme Co"}
    assert sessions.get(OTHER_USER).state == "gig:name"
    assert sessions.get(OTHER_USER).data == {}


async def test_required_field_cannot_be_skipped(say, sessions, transport):
    await say("/client")
    await say("/skip")
    assert "can't be skipped" in transport.last_text
    assert sessions.get(USER_ID).state == "client:name"
    assert "name" not in sessions.get(USER_ID).data


# ---------------------------------------------------------------------------
# Expiry and per-user locks
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def expiring(transport, api, accounts, clock):
    store = SessionStore(ttl_seconds=10, clock=clock)
    dispatcher = Dispatcher(transport, api, store, accounts)

    async def _say(text):
        await dispatcher.handle_message(InboundMessage(USER_ID, 5001, text, "Jane"))
    return store, _say


async def test_reply_after_timeout_asks_to_restart_flow(expiring, clock, api, transport):
    store, say = expiring
    await say("/client")
    await say("Acme Co")
    clock.now += 100
    await say("a@acme.com")

    assert transport.last_text == SESSION_LOST_FOR.format(command="/client")
    assert store.get(USER_ID) is None
    assert api.creates() == []

    await say("a@acme.com")
    assert transport.last_text == NOT_UNDERSTOOD


async def test_skip_after_timeout_asks_to_restart_flow(expiring, clock, transport):
    store, say = expiring
    await say("/expense")
    await say("Lunch")
    clock.now += 100
    await say("/skip")
    assert transport.last_text == SESSION_LOST_FOR.format(command="/expense")


async def test_command_after_timeout_just_runs(expiring, clock, transport):
    store, say = expiring
    await say("/client")
    clock.now += 100
    await say("/gig")
    assert store.get(USER_ID).state == "gig:name"
    await say("/cancel")
    await say("hello")
    assert transport.last_text == NOT_UNDERSTOOD


async def test_reply_within_timeout_continues(expiring, clock):
    store, say = expiring
    await say("/client")
    clock.now += 9
    await say("Acme Co")
    clock.now += 9
    await say("a@acme.com")
    assert store.get(USER_ID).state == "client:address"


async def test_locks_do_not_accumulate(say, press, sessions):
    for uid in range(3000, 3050):
        await say("hello", user_id=uid)
    await press("menu", user_id=3050)
    await say("/client")
    assert len(sessions) == 1
    assert sessions._locks == {}


# ---------------------------------------------------------------------------
# Top-level routing
# ---------------------------------------------------------------------------

async def test_text_without_session(say, transport):
    await say("hello")
    assert transport.last_text == NOT_UNDERSTOOD


async def test_skip_without_session(say, transport):
    await say("/skip")
    assert transport.last_text == NOT_UNDERSTOOD


async def test_unknown_command(say, transport):
    await say("/frobnicate")
    assert transport.last_text == UNKNOWN_COMMAND


async def test_command_with_bot_suffix(say, sessions):
    await say("/client@ung_bot")
    assert sessions.get(USER_ID).state == "client:name"


async def test_start_for_linked_user_shows_menu(say, transport):
    await say("/start")
    assert "Hey Jane!" in transport.last_text
    assert "start:invoice" in transport.callback_data()


async def test_list_expenses_shows_total(say, api, transport):
    api.expenses = [
        {"description": "Lunch", "amount": 12.5, "category": "meals"},
        {"description": "Laptop", "amount": 1000, "category": "equipment", "vendor": "Apple"},
    ]
    await say("/expenses")
    assert "Your Expenses" in transport.last_text
    assert "**Total:** $1,012.50" in transport.last_text


async def test_list_button(press, api, transport):
    await press("action:clients")
    assert ("list_clients", "tok-123") in api.calls
    assert "Acme Co" in transport.last_text


async def test_unknown_callback(press, transport):
    await press("bogus:data")
    assert transport.answers[-1][1] == "Unknown action"


async def test_document_upload_is_declined(dispatcher, transport):
    from ungbot.bot.dispatcher import InboundMessage
    await dispatcher.handle_message(InboundMessage(USER_ID, 1, "", "Jane", has_document=True))
    assert "File uploads" in transport.last_text


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("command", ["/client", "/invoice", "/expenses"])
async def test_unlinked_user_is_asked_to_log_in(say, sessions, transport, command):
    await say(command, user_id=OTHER_USER)
    assert sessions.get(OTHER_USER) is None
    assert "Connect your UNG account" in transport.last_text
    assert "login" in transport.callback_data()


async def test_login_flow_links_account(say, press, api, accounts, sessions, transport):
    await press("login", user_id=OTHER_USER)
    assert sessions.get(OTHER_USER).state == "login:email"
    await say("bob@example.com", user_id=OTHER_USER)
    await say("hunter2", user_id=OTHER_USER)

    assert ("login", {"email": "bob@example.com", "password": "hunter2"}) in api.calls
    account = await accounts.get(OTHER_USER)
    assert account.api_token == "tok-new"
    assert account.user_id == 42
    assert sessions.get(OTHER_USER) is None
    assert "Account connected" in transport.last_text


async def test_failed_login_does_not_link(say, api, accounts, transport):
    api.fail["login"] = APIError('API error: {"success":false,"error":"invalid credentials"}')
    await say("/login", user_id=OTHER_USER)
    await say("bob@example.com", user_id=OTHER_USER)
    await say("wrong", user_id=OTHER_USER)

    assert await accounts.get(OTHER_USER) is None
    assert transport.last_text.startswith("❌ Login failed: API error:")


async def test_logout(say, accounts, transport):
    await say("/logout")
    assert await accounts.get(USER_ID) is None
    assert "logged out" in transport.last_text


async def test_unexpected_error_is_reported(say, api, sessions, transport):
    api.fail["create_gig"] = RuntimeError("boom")
    await say("/gig")
    await say("Landing page")
    assert transport.last_text == "⚠️ Something went wrong. Please try again."
    assert sessions.get(USER_ID) is None
