"""
bot/accounts.py — Telegram user <-> UNG account links.

A link is created by the login flow and holds the bearer token used for every
backend call made on the user's behalf. Links are cached in memory and, when
a Mongo collection is given, persisted so a restart does not log everyone out.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class LinkedAccount:
    telegram_id: int
    api_token: str
    display_name: str = ""
    email: str = ""
    user_id: Optional[int] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "LinkedAccount":
        return cls(
            telegram_id=doc["_id"],
            api_token=doc.get("api_token", ""),
            display_name=doc.get("display_name", ""),
            email=doc.get("email", ""),
            user_id=doc.get("user_id"),
        )


class AccountStore:
    def __init__(self, collection=None):
        self._collection = collection
        self._cache: Dict[int, LinkedAccount] = {}

    async def get(self, telegram_id: int) -> Optional[LinkedAccount]:
        account = self._cache.get(telegram_id)
        if account is not None or self._collection is None:
            return account

        doc = await self._collection.find_one({"_id": telegram_id})
        if not doc or not doc.get("api_token"):
            return None
        account = LinkedAccount.from_document(doc)
        self._cache[telegram_id] = account
        return account

    async def is_authenticated(self, telegram_id: int) -> bool:
        account = await self.get(telegram_id)
        return account is not None and bool(account.api_token)

    async def link(self, account: LinkedAccount) -> None:
        self._cache[account.telegram_id] = account
        logger.info("Linked Telegram user %s to %s", account.telegram_id, account.email or "account")
        if self._collection is None:
            return
        await self._collection.update_one(
            {"_id": account.telegram_id},
            {"$set": {
                "api_token": account.api_token,
                "display_name": account.display_name,
                "email": account.email,
                "user_id": account.user_id,
                "linked_at": datetime.datetime.now(datetime.timezone.utc),
            }},
            upsert=True,
        )

    async def unlink(self, telegram_id: int) -> bool:
        """Forget the link. Returns True if there was one."""
        had = self._cache.pop(telegram_id, None) is not None
        if self._collection is not None:
            result = await self._collection.delete_one({"_id": telegram_id})
            had = had or bool(getattr(result, "deleted_count", 0))
        if had:
            logger.info("Unlinked Telegram user %s", telegram_id)
        return had
