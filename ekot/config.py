"""Module 1 — Config & Constants"""
import os
from pathlib import Path

from dotenv import load_dotenv

from .clock import Slot

# Load .env from project root (two levels up from ekot/)
_ROOT = Path(__file__).parent.parent
load_dotenv(_ROOT / ".env")

# ─── Paths ────────────────────────────────────────────────────────────────────
ROOT_DIR = _ROOT
OUTPUT_DIR = ROOT_DIR / os.getenv("OUTPUT_DIR", "output")
ERRORS_LOG = OUTPUT_DIR / "errors.log"
APP_LOG = OUTPUT_DIR / "ekot.log"

# ─── Feed ─────────────────────────────────────────────────────────────────────
API_URL = os.getenv(
    "API_URL",
    "https://api.sr.se/api/v2/podfiles?programid=4540&format=json&size=20",
)
RSS_URL = os.getenv("RSS_URL", "https://api.sr.se/api/rss/pod/3795")
FEED_FORMAT = os.getenv("FEED_FORMAT", "json").strip().lower()   # json | rss
FEED_TIMEOUT = float(os.getenv("FEED_TIMEOUT", "15"))
USER_AGENT = os.getenv("USER_AGENT", "EkotRadio/1.0")

# ─── Local day ────────────────────────────────────────────────────────────────
TIMEZONE = os.getenv("TIMEZONE", "Europe/Stockholm")

# Order matters: ties in find_latest resolve to the earlier slot.
SLOTS = (
    Slot("08:00", 8, 20),
    Slot("12:30", 13, 0),
    Slot("16:45", 17, 5),
    Slot("17:45", 18, 10),
)

# ─── Polling ──────────────────────────────────────────────────────────────────
ACTIVE_WINDOW = 10      # minutes after poll start
EXTENDED_WINDOW = 30    # minutes after poll start

POLL_ACTIVE = 60        # seconds
POLL_EXTENDED = 300
POLL_IDLE = 1800

DAY_CHECK_INTERVAL = 60

# ─── Playback ─────────────────────────────────────────────────────────────────
AUDIO_FOCUS_TIMEOUT = 15 * 60
SKIP_STEP = 15

FFPLAY_PATH = os.getenv("FFPLAY_PATH", "ffplay")
FFPROBE_PATH = os.getenv("FFPROBE_PATH", "ffprobe")

APP_VERSION = "2.1.6"

# ─── Web server ──────────────────────────────────────────────────────────────
WEB_HOST = os.getenv("WEB_HOST", "127.0.0.1")
WEB_PORT = int(os.getenv("WEB_PORT", "8095"))

# ─── Dev mode / logging ───────────────────────────────────────────────────────
DEV_MODE = os.getenv("DEV_MODE", "0").strip() in ("1", "true", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
