import datetime
import logging

from motor.motor_asyncio import AsyncIOMotorClient

from ungbot.config import MONGO_DB_NAME, MONGO_URI

logger = logging.getLogger(__name__)

# Created on first use; stays None when MONGO_URI is not configured.
client = None


def get_db():
    """Return the bot database, or None when persistence is disabled."""
    global client
    if not MONGO_URI:
        return None
    if client is None:
        client = AsyncIOMotorClient(MONGO_URI)
        logger.info("Connected to MongoDB database %s", MONGO_DB_NAME)
    return client[MONGO_DB_NAME]


def get_accounts_collection():
    db = get_db()
    return db.accounts if db is not None else None


def close_db():
    global client
    if client is not None:
        client.close()
        client = None


async def add_user(user_id, username):
    """Record that a Telegram user talked to the bot."""
    db = get_db()
    if db is None:
        return
    await db.users.update_one(
        {"_id": user_id},
        {"$set": {
            "username": username,
            "last_active": datetime.datetime.now(datetime.timezone.utc)
        }},
        upsert=True
    )
