"""
Central configuration, read from .env file.

Every module reads config.X at call time, so tests (and operators) can
override a value by patching the attribute without a restart.

Credentials are only ever read from here: the interactive lookup and the
CSV batch run share the same search key and scope.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# ── Google Custom Search (the image index) ────────────────────────────────────
# Create a key at https://console.cloud.google.com → APIs → Custom Search API
# and a search engine (cx) at https://programmablesearchengine.google.com
GOOGLE_API_KEY: str | None = os.getenv("GOOGLE_API_KEY")
GOOGLE_CX: str | None      = os.getenv("GOOGLE_CX")

SEARCH_API_URL: str   = os.getenv("SEARCH_API_URL", "https://www.googleapis.com/customsearch/v1")
SEARCH_TIMEOUT: float = float(os.getenv("SEARCH_TIMEOUT", "15"))

# ── Image fetch proxy ─────────────────────────────────────────────────────────
FETCH_TIMEOUT: float = float(os.getenv("FETCH_TIMEOUT", "20"))

# Path the web server mounts the proxy on; proxy_url values point here
PROXY_PATH: str = os.getenv("PROXY_PATH", "/api/image-proxy")

# ── Web server ────────────────────────────────────────────────────────────────
WEB_HOST: str = os.getenv("WEB_HOST", "0.0.0.0")
WEB_PORT: int = int(os.getenv("WEB_PORT", "8080"))

# ── Retailer selection ────────────────────────────────────────────────────────
# TARGET | BESTBUY | HOMEDEPOT | LOWES
DEFAULT_STORE: str = os.getenv("DEFAULT_STORE", "TARGET")

# ── Telegram front-end (optional) ─────────────────────────────────────────────
# Leave blank to run the web server only
TELEGRAM_BOT_TOKEN: str | None = os.getenv("TELEGRAM_BOT_TOKEN", "").strip() or None

# Edit the bot's progress message every N rows of a CSV batch
BATCH_PROGRESS_EVERY: int = int(os.getenv("BATCH_PROGRESS_EVERY", "5"))

# ── Storage ───────────────────────────────────────────────────────────────────
# Only the log file lives here; the service keeps no other state on disk
DATA_DIR: str = os.getenv("DATA_DIR", "data")

# Finished batch jobs (and their zips) are dropped from memory after this many seconds
BATCH_JOB_TTL: float = float(os.getenv("BATCH_JOB_TTL", "3600"))
