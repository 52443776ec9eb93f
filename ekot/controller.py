"""Playback state machine — at most one broadcast is current at a time.

stopped ──play──▶ playing ──pause──▶ paused ──resume──▶ playing
   ▲                 │                  │
   └──stop / ended───┴──stop / focus────┘
                          timeout

While paused a silent focus channel plays so other apps cannot take over the
audio output; after AUDIO_FOCUS_TIMEOUT the controller gives up and stops.
"""
import asyncio
import logging
from enum import Enum
from typing import Optional, Sequence

from .clock import Slot
from .config import AUDIO_FOCUS_TIMEOUT, SKIP_STEP, SLOTS
from .errors import NoBroadcastError, PlaybackError, format_error
from .media import MediaControls
from .player import AudioSurface, FocusChannel
from .store import BroadcastStore
from .utils import clamp, fmt_time

logger = logging.getLogger(__name__)

NO_BROADCASTS_YET = "Inga sändningar idag ännu"


class Status(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


class PlaybackController:
    def __init__(
        self,
        store: BroadcastStore,
        surface: AudioSurface,
        hub,
        focus: Optional[FocusChannel] = None,
        media: Optional[MediaControls] = None,
        slots: Sequence[Slot] = SLOTS,
        focus_timeout: float = AUDIO_FOCUS_TIMEOUT,
        skip_step: float = SKIP_STEP,
    ):
        self.store = store
        self.surface = surface
        self.hub = hub
        self.focus = focus
        self.media = media or MediaControls()
        self.slots = slots
        self.focus_timeout = focus_timeout
        self.skip_step = skip_step

        self.status = Status.STOPPED
        self.current_slot: Optional[str] = None
        self._focus_timer: Optional[asyncio.Task] = None
        self._starting = False

        surface.on("play", self._on_play)
        surface.on("pause", self._on_pause)
        surface.on("ended", self._on_ended)
        surface.on("error", self._on_error)
        surface.on("timeupdate", self._on_progress)
        surface.on("loadedmetadata", self._on_progress)

        self.media.set_handlers({
            "play": self._media_play,
            "pause": self._media_pause,
            "stop": self._media_stop,
            "previoustrack": self._media_skip_back,
            "nexttrack": self._media_skip_forward,
            "seekbackward": self._media_skip_back,
            "seekforward": self._media_skip_forward,
            "seekto": self._media_seek_to,
        })

    # ── Intents ──────────────────────────────────────────────────────────────

    async def play(self, slot: str):
        broadcast = self.store.get(slot)
        if broadcast is None or not broadcast.audio_url:
            raise NoBroadcastError(slot)

        self._cancel_focus_timer()
        self.current_slot = slot
        self.surface.load(broadcast.audio_url)

        self._starting = True
        try:
            ok = await self.surface.play()
        finally:
            self._starting = False

        if self.current_slot != slot:
            # Superseded by stop(), a day reset or another play() while starting.
            return
        if not ok:
            self.stop()
            raise PlaybackError(f"audio surface rejected {slot}")

        self.status = Status.PLAYING
        self.media.set_metadata(f"Ekot {slot}", "Sveriges Radio", "Ekot")
        logger.info("Playing %s", slot)
        self._notify()

    def pause(self):
        if self.status is not Status.PLAYING:
            return
        self.status = Status.PAUSED
        self.surface.pause()
        self._arm_focus_timer()
        self._notify()

    async def resume(self):
        if self.status is not Status.PAUSED:
            return
        slot = self.current_slot
        self._cancel_focus_timer()

        self._starting = True
        try:
            ok = await self.surface.play()
        finally:
            self._starting = False

        if self.current_slot != slot:
            return
        if not ok:
            self.stop()
            raise PlaybackError(f"audio surface rejected resume of {slot}")
        self.status = Status.PLAYING
        self._notify()

    def stop(self):
        self._cancel_focus_timer()
        self.surface.clear()
        self.current_slot = None
        self.status = Status.STOPPED
        self.media.clear()
        self._notify()

    async def toggle(self) -> Status:
        if self.status is Status.STOPPED and not self.surface.has_source:
            latest = self.store.find_latest(self.slots)
            if latest is None:
                await self.hub.broadcast("notice", {"message": NO_BROADCASTS_YET})
                return self.status
            await self.play(latest)
        elif self.status is Status.PLAYING:
            self.pause()
        elif self.status is Status.PAUSED:
            await self.resume()
        return self.status

    def skip(self, delta: Optional[float] = None):
        if not self.surface.has_source:
            return
        delta = self.skip_step if delta is None else delta
        target = self.surface.position + delta
        duration = self.surface.duration
        # Unknown duration only bounds the rewind side.
        self.surface.position = clamp(target, 0, duration) if duration else max(0.0, target)

    def seek(self, position: float):
        duration = self.surface.duration
        if not self.surface.has_source or not duration:
            return
        self.surface.position = clamp(position, 0, duration)

    # ── Audio focus keep-alive ───────────────────────────────────────────────

    @property
    def focus_armed(self) -> bool:
        return self._focus_timer is not None

    def _arm_focus_timer(self):
        self._cancel_focus_timer()
        deadline = asyncio.get_running_loop().time() + self.focus_timeout
        self._focus_timer = asyncio.create_task(self._focus_keepalive(deadline))

    def _cancel_focus_timer(self):
        if self._focus_timer is not None:
            self._focus_timer.cancel()
            self._focus_timer = None
        if self.focus:
            self.focus.release()

    async def _focus_keepalive(self, deadline: float):
        if self.focus:
            await self.focus.hold()
        await asyncio.sleep(max(0.0, deadline - asyncio.get_running_loop().time()))
        self._focus_timer = None
        logger.info("Audio focus timeout reached, releasing")
        self.stop()

    # ── Audio surface events ─────────────────────────────────────────────────

    def _on_play(self):
        if self._starting or self.current_slot is None or self.status is Status.PLAYING:
            return
        self._cancel_focus_timer()
        self.status = Status.PLAYING
        self._notify()

    def _on_pause(self):
        if self.status is not Status.PLAYING:
            return
        self.status = Status.PAUSED
        self._arm_focus_timer()
        self._notify()

    def _on_ended(self):
        slot = self.current_slot
        if slot is None:
            return
        self._cancel_focus_timer()
        self.surface.clear()
        self.current_slot = None
        self.status = Status.STOPPED
        self.media.clear()
        logger.info("Finished %s", slot)
        self.hub.emit("ended", {"slot": slot})
        self._notify()

    def _on_error(self):
        # A failed start is reported by play()/resume() as PlaybackError.
        if self._starting or self.current_slot is None:
            return
        msg = format_error("audio_error", "audio surface reported an error", {"slot": self.current_slot})
        self.hub.emit("error", {"message": msg})
        self.stop()

    def _on_progress(self):
        duration = self.surface.duration
        position = self.surface.position
        if duration:
            self.media.set_position(position, duration)
        self.hub.emit("tick", {"position": round(position, 1), "duration": duration})

    # ── Media control actions ────────────────────────────────────────────────

    async def _media_play(self, details: dict):
        if self.status is Status.PAUSED:
            await self.resume()
        elif self.status is Status.STOPPED:
            await self.toggle()

    async def _media_pause(self, details: dict):
        self.pause()

    async def _media_stop(self, details: dict):
        self.stop()

    async def _media_skip_back(self, details: dict):
        self.skip(-(details.get("seekOffset") or self.skip_step))

    async def _media_skip_forward(self, details: dict):
        self.skip(details.get("seekOffset") or self.skip_step)

    async def _media_seek_to(self, details: dict):
        if details.get("seekTime") is not None:
            self.seek(float(details["seekTime"]))

    # ── Snapshots ────────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        position = self.surface.position if self.surface.has_source else 0.0
        duration = self.surface.duration if self.surface.has_source else None
        broadcast = self.store.get(self.current_slot)
        return {
            "status": self.status.value,
            "slot": self.current_slot,
            "title": broadcast.title if broadcast else None,
            "position": round(position, 1),
            "duration": duration,
            "elapsed_fmt": fmt_time(position),
            "duration_fmt": fmt_time(duration),
            "focus_armed": self.focus_armed,
        }

    def _notify(self):
        self.hub.emit("playback_state", self.snapshot())
