import pytest

from ungbot.bot.accounts import AccountStore, LinkedAccount
from ungbot.bot.dispatcher import Dispatcher, InboundCallback, InboundMessage
from ungbot.bot.session_manager import SessionStore

USER_ID = 1001
CHAT_ID = 5001


class FakeTransport:
    def __init__(self):
        self.sent = []      # (chat_id, text, buttons)
        self.edits = []     # (chat_id, message_id, text)
        self.answers = []   # (callback_id, text, show_alert)

    async def send_text(self, chat_id, text):
        self.sent.append((chat_id, text, []))

    async def send_buttons(self, chat_id, text, buttons):
        self.sent.append((chat_id, text, buttons))

    async def edit_text(self, chat_id, message_id, text, buttons=None):
        self.edits.append((chat_id, message_id, text))

    async def answer_callback(self, callback_id, text="", show_alert=False):
        self.answers.append((callback_id, text, show_alert))

    @property
    def last_text(self):
        return self.sent[-1][1]

    @property
    def last_buttons(self):
        return self.sent[-1][2]

    def callback_data(self):
        """All callback payloads on the last message's keyboard."""
        return [b.callback_data for row in self.last_buttons for b in row if b.callback_data]


class FakeAPI:
    """Records every call; list results and failures are configurable."""

    def __init__(self):
        self.calls = []
        self.clients = [{"id": 7, "name": "Acme Co"}, {"id": 8, "name": "Globex"}]
        self.contracts = [{"id": 3, "client_id": 9, "name": "Website", "type": "hourly", "rate": 100}]
        self.invoices = []
        self.expenses = []
        self.companies = []
        self.tracking = []
        self.dashboard = {}
        self.search_results = {"query": "", "results": [], "counts": {}}
        self.fail = {}

    def _check(self, method):
        if method in self.fail:
            raise self.fail[method]

    def creates(self):
        return [c for c in self.calls if not c[0].startswith(("list_", "get_", "search"))]

    async def login(self, email, password):
        self.calls.append(("login", {"email": email, "password": password}))
        self._check("login")
        return {"access_token": "tok-new", "user": {"id": 42, "email": email, "name": "Jane"}}

    async def list_clients(self, token):
        self.calls.append(("list_clients", token))
        self._check("list_clients")
        return self.clients

    async def list_contracts(self, token):
        self.calls.append(("list_contracts", token))
        self._check("list_contracts")
        return self.contracts

    async def list_invoices(self, token):
        self.calls.append(("list_invoices", token))
        return self.invoices

    async def list_expenses(self, token):
        self.calls.append(("list_expenses", token))
        return self.expenses

    async def list_companies(self, token):
        self.calls.append(("list_companies", token))
        return self.companies

    async def list_tracking(self, token):
        self.calls.append(("list_tracking", token))
        self._check("list_tracking")
        return self.tracking

    async def get_dashboard(self, token):
        self.calls.append(("get_dashboard", token))
        self._check("get_dashboard")
        return self.dashboard

    async def search(self, token, query):
        self.calls.append(("search", query))
        self._check("search")
        return dict(self.search_results, query=query)

    async def start_tracking(self, token, project_id=1, notes=""):
        self.calls.append(("start_tracking", {"project_id": project_id, "notes": notes}))
        self._check("start_tracking")
        return {"id": 5, "start_time": "2026-03-02T09:00:00Z", "active": True}

    async def stop_tracking(self, token):
        self.calls.append(("stop_tracking", token))
        self._check("stop_tracking")
        return {
            "id": 5, "start_time": "2026-03-02T09:00:00Z", "end_time": "2026-03-02T11:30:00Z",
            "duration": 2.5, "notes": "",
        }

    async def _create(self, method, payload, **extra):
        self.calls.append((method, payload))
        self._check(method)
        return dict(payload, id=99, **extra)

    async def create_client(self, token, payload):
        return await self._create("create_client", payload)

    async def create_company(self, token, payload):
        return await self._create("create_company", payload)

    async def create_contract(self, token, payload):
        return await self._create("create_contract", payload, status="active")

    async def create_invoice(self, token, payload):
        return await self._create("create_invoice", payload, invoice_num="INV-0001")

    async def create_expense(self, token, payload):
        return await self._create("create_expense", payload)

    async def create_tracking(self, token, payload):
        return await self._create("create_tracking", payload)

    async def create_gig(self, token, payload):
        return await self._create("create_gig", payload)

    async def create_gig_task(self, token, gig_id, payload):
        return await self._create("create_gig_task", dict(payload, gig_id=gig_id))

    async def update_hunter_profile(self, token, payload):
        return await self._create("update_hunter_profile", payload)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def api():
    return FakeAPI()


@pytest.fixture
def sessions():
    return SessionStore(ttl_seconds=0)


@pytest.fixture
async def accounts():
    store = AccountStore()
    await store.link(LinkedAccount(USER_ID, "tok-123", "Jane", "jane@example.com"))
    return store


@pytest.fixture
def dispatcher(transport, api, sessions, accounts):
    return Dispatcher(transport, api, sessions, accounts)


@pytest.fixture
def say(dispatcher):
    """Send a text message as the default user."""
    async def _say(text, user_id=USER_ID):
        await dispatcher.handle_message(InboundMessage(user_id, CHAT_ID + user_id - USER_ID, text, "Jane"))
    return _say


@pytest.fixture
def press(dispatcher):
    """Press an inline button as the default user."""
    counter = {"n": 0}

    async def _press(data, user_id=USER_ID):
        counter["n"] += 1
        await dispatcher.handle_callback(
            InboundCallback(f"cb{counter['n']}", user_id, CHAT_ID, 77, data, "Jane")
        )
    return _press

