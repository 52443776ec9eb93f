"""Platform media controls — lock-screen/headset style play, pause and seek actions.

``MediaControls`` is the no-op default used when no platform integration is
available. ``WebMediaControls`` mirrors metadata and position to WebSocket
clients so a browser can feed its own media session, and routes the actions
the browser reports back into the registered handlers.
"""
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ACTIONS = (
    "play", "pause", "stop",
    "previoustrack", "nexttrack",
    "seekbackward", "seekforward", "seekto",
)


class MediaControls:
    def set_handlers(self, handlers: dict[str, Callable]):
        pass

    def set_metadata(self, title: str, artist: str, album: str):
        pass

    def set_position(self, position: float, duration: float, rate: float = 1.0):
        pass

    def clear(self):
        pass


class WebMediaControls(MediaControls):
    def __init__(self, hub):
        self.hub = hub
        self._handlers: dict[str, Callable] = {}

    def set_handlers(self, handlers: dict[str, Callable]):
        unknown = set(handlers) - set(ACTIONS)
        if unknown:
            raise ValueError(f"unknown media actions: {sorted(unknown)}")
        self._handlers = dict(handlers)

    def set_metadata(self, title: str, artist: str, album: str):
        self.hub.emit("media_metadata", {"title": title, "artist": artist, "album": album})

    def set_position(self, position: float, duration: float, rate: float = 1.0):
        self.hub.emit("media_position", {
            "position": round(position, 1),
            "duration": round(duration, 1),
            "playback_rate": rate,
        })

    def clear(self):
        self.hub.emit("media_metadata", None)

    async def dispatch(self, action: str, details: Optional[dict] = None):
        handler = self._handlers.get(action)
        if handler is None:
            logger.warning("Unhandled media action: %s", action)
            return
        await handler(details or {})
