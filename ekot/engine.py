"""Application root — wires store, scheduler and controller; routes presenter intents.

Presenters never touch the store or the playback session directly: they read
``get_snapshot()`` and send intents through ``dispatch()``. State changes come
back as events on the hub.
"""
import logging
from typing import Optional, Sequence

from .clock import Slot, TimeSource
from .config import APP_VERSION, OUTPUT_DIR, SLOTS, TIMEZONE
from .controller import PlaybackController
from .errors import NoBroadcastError, PlaybackError, format_error
from .feed import FeedClient
from .media import MediaControls
from .player import AudioSurface, FFplaySurface, FocusChannel
from .scheduler import PollScheduler
from .store import BroadcastStore

logger = logging.getLogger(__name__)

INTENTS = ("play", "toggle", "pause", "resume", "skip", "seek", "stop", "refresh", "media_action")


class EkotEngine:
    def __init__(
        self,
        hub,
        feed: Optional[FeedClient] = None,
        clock: Optional[TimeSource] = None,
        surface: Optional[AudioSurface] = None,
        focus: Optional[FocusChannel] = None,
        media: Optional[MediaControls] = None,
        slots: Sequence[Slot] = SLOTS,
        **controller_options,
    ):
        """hub: EventHub instance for broadcasting to presenters."""
        self.hub = hub
        self.slots = slots
        self.clock = clock or TimeSource(TIMEZONE)
        self.feed = feed or FeedClient()
        self.media = media or MediaControls()

        if surface is None:
            surface = FFplaySurface()
            if focus is None:
                focus = FocusChannel(FFplaySurface(loop_forever=True), OUTPUT_DIR / "silence.wav")

        self.store = BroadcastStore(self.clock.today())
        self.controller = PlaybackController(
            self.store, surface, hub,
            focus=focus, media=self.media, slots=slots,
            **controller_options,
        )
        # Day rollover clears the playback session before the store forgets the day.
        self.store.on_reset = self.controller.stop
        self.scheduler = PollScheduler(self.store, self.feed, self.clock, hub, slots=slots)
        self._running = False

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def run(self):
        """First fetch bypasses caches, then the adaptive poll loop takes over."""
        self._running = True
        await self.scheduler.refresh(force=True)
        if self._running:
            self.scheduler.start()
            logger.info("Polling started, next check in %ss", self.scheduler.compute_interval())

    async def stop(self):
        """Graceful shutdown."""
        self._running = False
        self.scheduler.cancel()
        self.controller.stop()

    @property
    def running(self) -> bool:
        return self._running

    # ── Intents ──────────────────────────────────────────────────────────────

    async def dispatch(self, intent: str, data: Optional[dict] = None):
        """Route one presenter intent. Failures become hub events, never exceptions."""
        data = data or {}
        ctl = self.controller
        try:
            if intent == "play":
                await ctl.play(data.get("slot"))
            elif intent == "toggle":
                await ctl.toggle()
            elif intent == "pause":
                ctl.pause()
            elif intent == "resume":
                await ctl.resume()
            elif intent == "skip":
                delta = data.get("delta")
                ctl.skip(float(delta) if delta is not None else None)
            elif intent == "seek":
                if data.get("position") is not None:
                    ctl.seek(float(data["position"]))
            elif intent == "stop":
                ctl.stop()
            elif intent == "refresh":
                await self.scheduler.refresh_now(force=True)
            elif intent == "media_action":
                dispatch_media = getattr(self.media, "dispatch", None)
                if dispatch_media:
                    await dispatch_media(data.get("action", ""), data.get("details"))
            else:
                logger.warning("Unknown intent: %s", intent)
        except NoBroadcastError as e:
            logger.info("%s", e)
            await self.hub.broadcast("notice", {"message": "Ingen sändning tillgänglig", "slot": e.slot})
        except PlaybackError as e:
            msg = format_error("playback", str(e), {"intent": intent, "data": data})
            await self.hub.broadcast("error", {"message": msg})
        except (TypeError, ValueError) as e:
            logger.warning("Bad %s intent %r: %s", intent, data, e)

    # ── Snapshots ────────────────────────────────────────────────────────────

    def get_snapshot(self) -> dict:
        """Full state snapshot for initial presenter sync."""
        return {
            "version": APP_VERSION,
            "slots": [s.label for s in self.slots],
            "store": self.store.snapshot(self.slots),
            "playback": self.controller.snapshot(),
            "poll": {
                "next_interval": self.scheduler.next_interval,
                "fetching": self.scheduler.fetching,
                "last_error": self.scheduler.last_error,
            },
        }
