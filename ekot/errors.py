"""Error types and structured error logging — JSON to errors.log."""
import json
import logging
import sys
from datetime import datetime
from typing import Optional

from .config import ERRORS_LOG, OUTPUT_DIR, DEV_MODE

logger = logging.getLogger(__name__)


class EkotError(Exception):
    """Base class for every recoverable failure in the radio core."""


class FetchError(EkotError):
    """Feed could not be fetched or parsed. The store is left untouched."""


class NoBroadcastError(EkotError):
    """Play was requested for a slot that has no broadcast today."""

    def __init__(self, slot: Optional[str]):
        self.slot = slot
        super().__init__(f"no broadcast available for slot {slot!r}")


class PlaybackError(EkotError):
    """The audio surface refused to start playback."""


_FRIENDLY_MESSAGES = {
    "fetch": "Kunde inte hämta sändningar",
    "poll": "Kunde inte hämta sändningar",
    "no_broadcast": "Ingen sändning tillgänglig",
    "playback": "Kunde inte spela upp ljudet",
    "audio_error": "Fel vid uppspelning",
}


def format_error(
    stage: str,
    raw: str = "",
    context: Optional[dict] = None,
) -> str:
    entry = {
        "timestamp": datetime.now().isoformat(),
        "stage": stage,
        "context": context,
        "error": raw,
        "python": sys.version.split()[0],
    }

    _append_to_log(entry)
    logger.error("Error at %s: %s", stage, raw)

    if DEV_MODE:
        return json.dumps(entry, indent=2)
    return _FRIENDLY_MESSAGES.get(stage, f"Något gick fel ({stage}).")


def _append_to_log(entry: dict):
    try:
        OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        with open(ERRORS_LOG, "a") as f:
            f.write(json.dumps(entry) + "\n")
    except OSError:
        pass
