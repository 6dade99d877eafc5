import asyncio
import logging

from pyrogram import idle

from ungbot.api import close_api_client
from ungbot.bot.main import app as bot_app, sessions
from ungbot.config import LOG_LEVEL, SESSION_TIMEOUT, UNG_API_URL
from ungbot.database.db import close_db

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=LOG_LEVEL
)
logger = logging.getLogger(__name__)


async def start_services():
    # Start the Bot
    logger.info("Starting Bot (API: %s)...", UNG_API_URL)
    await bot_app.start()

    if SESSION_TIMEOUT:
        logger.info("Idle conversations expire after %ss", SESSION_TIMEOUT)
    logger.info("Bot is running...")
    await idle()

    # Stop Bot when idle ends
    await bot_app.stop()
    await close_api_client()
    close_db()
    logger.info("Stopped with %d unfinished conversations", len(sessions))


if __name__ == "__main__":
    loop = asyncio.get_event_loop()
    loop.run_until_complete(start_services())
