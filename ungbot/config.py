import os
from dotenv import load_dotenv

load_dotenv()

# Telegram bot credentials
API_ID = int(os.getenv("API_ID", "0"))
API_HASH = os.getenv("API_HASH", "")
BOT_TOKEN = os.getenv("BOT_TOKEN", os.getenv("TELEGRAM_BOT_TOKEN", ""))

# UNG backend
UNG_API_URL = os.getenv("UNG_API_URL", "http://localhost:8080").rstrip("/")
WEB_APP_URL = os.getenv("WEB_APP_URL", "https://ung.app").rstrip("/")
API_TIMEOUT = float(os.getenv("API_TIMEOUT", "30"))

# Database (linked accounts). Empty disables persistence.
MONGO_URI = os.getenv("MONGO_URI", "")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "ung_telegram")

# Conversation sessions idle longer than this are dropped. 0 = never expire.
SESSION_TIMEOUT = int(os.getenv("SESSION_TIMEOUT", "1800"))

# Logging
DEBUG = os.getenv("DEBUG", "").lower() == "true"
LOG_LEVEL = "DEBUG" if DEBUG else os.getenv("LOG_LEVEL", "INFO").upper()
