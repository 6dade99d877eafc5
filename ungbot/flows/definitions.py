"""
flows/definitions.py — The static flow table.

Every multi-step conversation the bot offers is declared here as a Flow: the
ordered questions, how each answer is validated, and the single backend call
that acts on the collected answers. Adding a flow means adding an entry
to FLOWS; the engine and the dispatcher need no changes.

Flows
-----
    login            email, password                       -> auth/login
    client           name, email, address?, tax_id?        -> POST clients
    company          name, email, phone?, address?, tax_id? -> POST companies
    contract         client*, name, type*, rate            -> POST contracts
    invoice          client*, amount, description, due*    -> POST invoices
    expense          description, amount, category*, vendor? -> POST expenses
    time_log         contract*, hours, project?, notes?    -> POST tracking
    gig              name                                  -> POST gigs
    gig_task         title (gig id seeded by the button)   -> POST gig tasks
    hunter_profile   name, title, skills, rate             -> PUT hunter profile
    search           query (or /search <query>)            -> GET search

``*`` = chosen with buttons, ``?`` = optional (/skip).
"""
from __future__ import annotations

import datetime
from typing import Any, Dict, List, Optional

from ungbot.bot import states
from ungbot.bot.auth import finalize_login
from ungbot.bot.replies import Button, Reply
from ungbot.flows import validators as v
from ungbot.flows.engine import Flow, FlowContext, InputKind, Option, Step

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _money(value: Any) -> str:
    try:
        return f"${float(value):,.2f}"
    except (TypeError, ValueError):
        return "$0.00"


def _get(record: Optional[Dict[str, Any]], key: str, default: Any = "") -> Any:
    if not record:
        return default
    value = record.get(key)
    return default if value is None else value


def _done_buttons(again_flow: str) -> List[List[Button]]:
    return [[
        Button("➕ Create Another", states.start_flow(again_flow)),
        Button("🏠 Main Menu", states.Callback.MENU),
    ]]


MAX_SEARCH_RESULTS = 8

_SEARCH_EMOJI = {
    "client": "👤",
    "invoice": "📄",
    "contract": "📋",
    "expense": "💸",
    "company": "🏢",
    "tracking": "⏱️",
}


# ---------------------------------------------------------------------------
# Option loaders
# ---------------------------------------------------------------------------

async def load_clients(ctx: FlowContext) -> List[Option]:
    clients = await ctx.api.list_clients(ctx.token)
    return [Option(str(c["id"]), c.get("name") or f"Client #{c['id']}") for c in clients]


async def load_contracts(ctx: FlowContext) -> List[Option]:
    contracts = await ctx.api.list_contracts(ctx.token)
    options = []
    for c in contracts:
        label = c.get("name") or f"Contract #{c['id']}"
        if c.get("type") == "hourly" and c.get("rate"):
            label = f"{label} (${float(c['rate']):.0f}/hr)"
        options.append(Option(f"{c['id']}_{c.get('client_id') or 0}", label))
    return options


# ---------------------------------------------------------------------------
# Finalize actions
# ---------------------------------------------------------------------------

async def finalize_client(ctx: FlowContext, data: Dict[str, Any]) -> Reply:
    client = await ctx.api.create_client(ctx.token, {
        "name": data["name"],
        "email": data["email"],
        "address": data["address"],
        "tax_id": data["tax_id"],
    })
    text = "✅ **Client created successfully!**\n\n"
    text += f"**Name:** {_get(client, 'name', data['name'])}\n"
    text += f"**Email:** {_get(client, 'email', data['email'])}\n"
    if _get(client, "address", data["address"]):
        text += f"**Address:** {_get(client, 'address', data['address'])}\n"
    if _get(client, "tax_id", data["tax_id"]):
        text += f"**Tax ID:** {_get(client, 'tax_id', data['tax_id'])}\n"
    text += "\n__You can now create invoices for this client!__"
    return Reply(text, [[
        Button("📄 New Invoice", states.start_flow("invoice")),
        Button("🏠 Main Menu", states.Callback.MENU),
    ]])


async def finalize_company(ctx: FlowContext, data: Dict[str, Any]) -> Reply:
    company = await ctx.api.create_company(ctx.token, {
        "name": data["name"],
        "email": data["email"],
        "phone": data["phone"],
        "address": data["address"],
        "tax_id": data["tax_id"],
    })
    text = "✅ **Company saved!**\n\n"
    text += f"🏢 {_get(company, 'name', data['name'])}\n"
    text += f"📧 {_get(company, 'email', data['email'])}\n"
    if data["phone"]:
        text += f"📞 {data['phone']}\n"
    if data["address"]:
        text += f"📍 {data['address']}\n"
    if data["tax_id"]:
        text += f"🧾 {data['tax_id']}\n"
    text += "\n__These details will appear on your invoices.__"
    return Reply(text)


async def finalize_contract(ctx: FlowContext, data: Dict[str, Any]) -> Reply:
    contract = await ctx.api.create_contract(ctx.token, {
        "client_id": data["client_id"],
        "name": data["name"],
        "type": data["type"],
        "rate": data["rate"],
    })
    text = "✅ **Contract created successfully!**\n\n"
    text += f"**Name:** {_get(contract, 'name', data['name'])}\n"
    text += f"**Client:** {data.get('client_name', '')}\n"
    text += f"**Type:** {_get(contract, 'type', data['type'])}\n"
    text += f"**Rate:** {_money(_get(contract, 'rate', data['rate']))}\n"
    if _get(contract, "status"):
        text += f"**Status:** {contract['status']}\n"
    text += "\n__You can now track time against this contract!__"
    return Reply(text, [[
        Button("⏱️ Log Time", states.start_flow("time_log")),
        Button("🏠 Main Menu", states.Callback.MENU),
    ]])


async def finalize_invoice(ctx: FlowContext, data: Dict[str, Any]) -> Reply:
    due = datetime.date.today() + datetime.timedelta(days=data["due_days"])
    invoice = await ctx.api.create_invoice(ctx.token, {
        "client_id": data["client_id"],
        "amount": data["amount"],
        "currency": "USD",
        "description": data["description"],
        "due_date": due.isoformat(),
    })
    text = (
        "✅ **Invoice created successfully!**\n\n"
        f"Invoice #{_get(invoice, 'invoice_num', '-')}\n"
        f"Client: {data.get('client_name', '')}\n"
        f"Amount: {_money(_get(invoice, 'amount', data['amount']))} {_get(invoice, 'currency', 'USD')}\n"
        f"Due Date: {due.strftime('%B %d, %Y')}\n\n"
        "What would you like to do next?"
    )
    return Reply(text, _done_buttons("invoice"))


async def finalize_expense(ctx: FlowContext, data: Dict[str, Any]) -> Reply:
    expense = await ctx.api.create_expense(ctx.token, {
        "description": data["description"],
        "amount": data["amount"],
        "category": data["category"],
        "vendor": data["vendor"],
        "date": datetime.date.today().isoformat(),
    })
    text = "✅ **Expense recorded!**\n\n"
    text += f"📝 {_get(expense, 'description', data['description'])}\n"
    text += f"💵 {_money(_get(expense, 'amount', data['amount']))}\n"
    text += f"📂 {data.get('category_label') or data['category']}\n"
    if data["vendor"]:
        text += f"🏪 {data['vendor']}\n"
    return Reply(text, _done_buttons("expense"))


async def finalize_time_log(ctx: FlowContext, data: Dict[str, Any]) -> Reply:
    contract_id, client_id = data["contract"]
    hours = data["hours"]
    end = datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)
    start = end - datetime.timedelta(hours=hours)

    await ctx.api.create_tracking(ctx.token, {
        "contract_id": contract_id,
        "client_id": client_id or None,
        "project_name": data["project"],
        "start_time": start.isoformat(),
        "end_time": end.isoformat(),
        "hours": hours,
        "billable": True,
        "notes": data["notes"],
    })
    text = "✅ **Time logged!**\n\n"
    text += f"📋 Contract: {data.get('contract_name', '')}\n"
    text += f"⏱️ Hours: {hours:.2f}\n"
    if data["project"]:
        text += f"📁 Project: {data['project']}\n"
    if data["notes"]:
        text += f"📝 Notes: {data['notes']}\n"
    return Reply(text, _done_buttons("time_log"))


async def finalize_gig(ctx: FlowContext, data: Dict[str, Any]) -> Reply:
    gig = await ctx.api.create_gig(ctx.token, {
        "name": data["name"],
        "status": "todo",
        "gig_type": "hourly",
    })
    buttons = [[Button("🏠 Main Menu", states.Callback.MENU)]]
    if _get(gig, "id"):
        buttons.insert(0, [Button("➕ Add task", states.start_flow("gig_task", gig["id"]))])
    return Reply(f"✅ **Created!**\n\n📋 {_get(gig, 'name', data['name'])}\n📋 Todo", buttons)


async def finalize_gig_task(ctx: FlowContext, data: Dict[str, Any]) -> Reply:
    gig_id = data["gig_id"]
    task = await ctx.api.create_gig_task(ctx.token, gig_id, {"title": data["title"]})
    return Reply(
        f"✅ Task added: {_get(task, 'title', data['title'])}",
        [[Button("➕ Another task", states.start_flow("gig_task", gig_id))]],
    )


async def finalize_search(ctx: FlowContext, data: Dict[str, Any]) -> Reply:
    found = await ctx.api.search(ctx.token, data["query"])
    results = found.get("results") or []

    text = "🔍 **Search Results**\n\n"
    text += f"Query: __{_get(found, 'query', data['query'])}__\n\n"
    if not results:
        text += "No results found.\n\nTry a different search term."
    else:
        text += "**Found:**\n"
        for kind, count in sorted((found.get("counts") or {}).items()):
            if count:
                text += f"{_SEARCH_EMOJI.get(kind, '📌')} {kind}: {count}\n"
        text += "\n**Results:**\n\n"
        for result in results[:MAX_SEARCH_RESULTS]:
            text += f"{_SEARCH_EMOJI.get(result.get('type'), '📌')} **{result.get('title', '')}**\n"
            if result.get("subtitle"):
                text += f"   {result['subtitle']}\n"
            text += "\n"
        if len(results) > MAX_SEARCH_RESULTS:
            text += f"__...and {len(results) - MAX_SEARCH_RESULTS} more results__"
    return Reply(text, [[
        Button("🔍 New Search", states.start_flow("search")),
        Button("🏠 Main Menu", states.Callback.MENU),
    ]])


async def finalize_hunter_profile(ctx: FlowContext, data: Dict[str, Any]) -> Reply:
    await ctx.api.update_hunter_profile(ctx.token, {
        "name": data["name"],
        "title": data["title"],
        "skills": data["skills"],
        "rate": data["rate"],
        "remote": True,
    })
    return Reply(
        "✅ **Profile saved!**\n\n"
        f"👤 {data['name']}\n"
        f"💼 {data['title']}\n"
        f"🛠 {', '.join(data['skills'])}\n"
        f"💵 {_money(data['rate'])}/hr"
    )


# ---------------------------------------------------------------------------
# Prompts that depend on earlier answers
# ---------------------------------------------------------------------------

_RATE_EXAMPLES = {
    "hourly": "150 or 150.50",
    "monthly": "5000 or 5000.00",
    "fixed": "10000 or 10000.00",
    "project": "25000 or 25000.00",
}


def _rate_prompt(data: Dict[str, Any]) -> str:
    kind = data.get("type", "")
    example = _RATE_EXAMPLES.get(kind, "1000 or 1000.00")
    label = f"{kind} rate" if kind else "rate"
    return f"What is the {label}?\n\nExample: {example}"


def _category_prompt(data: Dict[str, Any]) -> str:
    return f"Amount: {_money(data.get('amount'))}\n\nNow select a category:"


# ---------------------------------------------------------------------------
# Flow table
# ---------------------------------------------------------------------------

LOGIN = Flow(
    name="login",
    title="Login",
    command="login",
    requires_auth=False,
    failure_text="Login failed",
    intro="🔐 **Connect your UNG account**",
    finalize=finalize_login,
    steps=(
        Step("email", "Please send the email you use on UNG:", validator=v.email),
        Step("password", "Now send your password:", validator=v.non_empty("Password")),
    ),
)

CLIENT = Flow(
    name="client",
    title="New Client",
    command="client",
    failure_text="Failed to create client",
    intro="👥 **New Client**",
    finalize=finalize_client,
    steps=(
        Step("name", "What is the client's name?", validator=v.non_empty("Client name")),
        Step("email", "What is the client's email?", validator=v.email),
        Step("address", "What is the client's address?", optional=True),
        Step("tax_id", "What is the client's tax ID?", optional=True),
    ),
)

COMPANY = Flow(
    name="company",
    title="Company Details",
    command="company",
    failure_text="Failed to save company",
    intro="🏢 **Company Details**",
    finalize=finalize_company,
    steps=(
        Step("name", "What is your company name?", validator=v.non_empty("Company name")),
        Step("email", "What is the company email?", validator=v.email),
        Step("phone", "Company phone number?", optional=True),
        Step("address", "Company address?", optional=True),
        Step("tax_id", "Company tax ID?", optional=True),
    ),
)

CONTRACT = Flow(
    name="contract",
    title="New Contract",
    command="contract",
    failure_text="Failed to create contract",
    intro="📋 **New Contract**",
    finalize=finalize_contract,
    steps=(
        Step(
            "client_id", "Select a client for this contract:",
            kind=InputKind.SELECT,
            options_loader=load_clients,
            validator=v.positive_int,
            label_key="client_name",
            empty_text="You don't have any clients yet.\n\nPlease create a client first using /client",
            shortcuts=(("➕ Create new client", "client"),),
        ),
        Step("name", "What is the contract name?", validator=v.non_empty("Contract name")),
        Step(
            "type", "Select the contract type:",
            kind=InputKind.SELECT,
            columns=2,
            options=(
                Option("hourly", "⏱️ Hourly"),
                Option("fixed", "💰 Fixed"),
                Option("monthly", "📅 Monthly"),
                Option("project", "📦 Project"),
            ),
        ),
        Step(
            "rate", _rate_prompt,
            kind=InputKind.NUMBER,
            validator=v.positive_number("Rate", example="1000 or 1000.50"),
        ),
    ),
)

INVOICE = Flow(
    name="invoice",
    title="New Invoice",
    command="invoice",
    failure_text="Failed to create invoice",
    intro="📄 **New Invoice**",
    finalize=finalize_invoice,
    steps=(
        Step(
            "client_id", "Select a client for this invoice:",
            kind=InputKind.SELECT,
            options_loader=load_clients,
            validator=v.positive_int,
            label_key="client_name",
            empty_text="You don't have any clients yet.\n\nPlease create a client first using /client",
            shortcuts=(("➕ Create new client", "client"),),
        ),
        Step(
            "amount", "What is the invoice amount?\n\nExample: 1500 or 1500.50",
            kind=InputKind.NUMBER,
            validator=v.positive_number("Amount", example="1500 or 1500.50"),
        ),
        Step("description", "What is this invoice for?", validator=v.non_empty("Description")),
        Step(
            "due_days", "When is the payment due?",
            kind=InputKind.SELECT,
            validator=v.positive_int,
            columns=3,
            options=(
                Option("7", "7 days"),
                Option("14", "14 days"),
                Option("30", "30 days"),
            ),
        ),
    ),
)

EXPENSE = Flow(
    name="expense",
    title="New Expense",
    command="expense",
    failure_text="Failed to create expense",
    intro="💸 **New Expense**",
    finalize=finalize_expense,
    steps=(
        Step("description", "What was the expense for?", validator=v.non_empty("Description")),
        Step(
            "amount", "How much did it cost?\n\nExample: 50 or 50.25",
            kind=InputKind.NUMBER,
            validator=v.positive_number("Amount", example="50 or 50.25"),
        ),
        Step(
            "category", _category_prompt,
            kind=InputKind.SELECT,
            label_key="category_label",
            columns=2,
            options=(
                Option("meals", "🍔 Meals"),
                Option("travel", "🚗 Travel"),
                Option("office", "🏢 Office"),
                Option("equipment", "💻 Equipment"),
                Option("software", "📱 Software"),
                Option("education", "📚 Education"),
                Option("marketing", "🎯 Marketing"),
                Option("other", "📦 Other"),
            ),
        ),
        Step("vendor", "Who was the vendor?", optional=True),
    ),
)

TIME_LOG = Flow(
    name="time_log",
    title="Log Time",
    command="log",
    failure_text="Failed to log time",
    intro="⏱️ **Log Time Manually**",
    finalize=finalize_time_log,
    steps=(
        Step(
            "contract", "Select the contract you worked on:",
            kind=InputKind.SELECT,
            options_loader=load_contracts,
            validator=v.id_pair,
            label_key="contract_name",
            empty_text="You don't have any contracts yet.\n\nCreate a contract first with /contract",
        ),
        Step(
            "hours", "How many hours did you work?\n\n__Example: 2.5 or 8__",
            kind=InputKind.NUMBER,
            validator=v.positive_number("Hours", max_value=24, example="2.5"),
        ),
        Step("project", "What project/task were you working on?", optional=True),
        Step("notes", "Any notes about this work?", optional=True),
    ),
)

GIG = Flow(
    name="gig",
    title="New Gig",
    command="gig",
    failure_text="Failed to create gig",
    intro="📋 **New Gig**",
    finalize=finalize_gig,
    steps=(
        Step("name", "What's the gig name?", validator=v.non_empty("Gig name")),
    ),
)

GIG_TASK = Flow(
    name="gig_task",
    title="New Task",
    seed_key="gig_id",
    failure_text="Failed to add task",
    finalize=finalize_gig_task,
    steps=(
        Step("title", "📝 Enter task title:", validator=v.non_empty("Task title")),
    ),
)

HUNTER_PROFILE = Flow(
    name="hunter_profile",
    title="Job Hunter Profile",
    command="profile",
    failure_text="Failed to save profile",
    intro="🎯 **Job Hunter Profile**",
    finalize=finalize_hunter_profile,
    steps=(
        Step("name", "What's your full name?", validator=v.non_empty("Name")),
        Step("title", "What's your professional title?\n\n__Example: Senior Go Developer__",
             validator=v.non_empty("Title")),
        Step("skills", "List your skills, separated by commas:\n\n__Example: Go, React, PostgreSQL__",
             validator=v.comma_list("skill")),
        Step(
            "rate", "What's your hourly rate in USD?",
            kind=InputKind.NUMBER,
            validator=v.positive_number("Rate", example="85"),
        ),
    ),
)

SEARCH = Flow(
    name="search",
    title="Search",
    command="search",
    failure_text="Search failed",
    intro="🔍 **Search**",
    inline_answer=True,
    finalize=finalize_search,
    steps=(
        Step(
            "query",
            "Enter your search query:\n\n__Search across clients, invoices, contracts, and more.__",
            validator=v.non_empty("Search query"),
        ),
    ),
)

FLOWS: Dict[str, Flow] = {
    flow.name: flow
    for flow in (
        LOGIN, CLIENT, COMPANY, CONTRACT, INVOICE, EXPENSE,
        TIME_LOG, GIG, GIG_TASK, HUNTER_PROFILE, SEARCH,
    )
}

FLOWS_BY_COMMAND: Dict[str, Flow] = {flow.command: flow for flow in FLOWS.values() if flow.command}


def get_flow(name: str) -> Optional[Flow]:
    return FLOWS.get(name)


def entry_command(flow: Flow) -> str:
    """The command a user types to restart ``flow``."""
    return f"/{flow.command}" if flow.command else "/menu"
