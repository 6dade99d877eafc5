"""
UNG Telegram bot.

Chat front-end for the UNG billing API. Multi-step conversations (create a
client, an invoice, log time, ...) are described as static flow tables in
``ungbot.flows`` and driven by a single engine; ``ungbot.bot`` wires that
engine to Telegram.
"""

__version__ = "0.1.0"
