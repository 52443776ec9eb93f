"""Module 4 — Audio surfaces: ffplay-backed playback and the silent focus channel."""
import asyncio
import logging
import os
import signal
import subprocess
import time
import wave
from collections import defaultdict
from pathlib import Path
from typing import Callable, Optional

from .config import FFPLAY_PATH, FFPROBE_PATH

logger = logging.getLogger(__name__)

EVENTS = ("play", "pause", "ended", "error", "timeupdate", "loadedmetadata")


def probe_duration(url: str) -> float | None:
    """Get stream duration in seconds using ffprobe. Returns None on failure."""
    try:
        result = subprocess.run(
            [FFPROBE_PATH, "-v", "error", "-show_entries", "format=duration",
             "-of", "default=noprint_wrappers=1:nokey=1", url],
            capture_output=True, text=True, timeout=15,
        )
        return float(result.stdout.strip())
    except (OSError, subprocess.SubprocessError, ValueError):
        return None


def write_silence_wav(path: Path, seconds: float = 1.0, rate: int = 8000) -> Path:
    """Write a mono 16-bit silent WAV used to hold audio focus."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(rate)
        w.writeframes(b"\x00\x00" * int(rate * seconds))
    return path


class AudioSurface:
    """What the playback controller drives. Subclasses provide the transport."""

    def __init__(self):
        self._listeners: dict[str, list[Callable]] = defaultdict(list)

    def on(self, event: str, callback: Callable):
        if event not in EVENTS:
            raise ValueError(f"unknown audio event: {event}")
        self._listeners[event].append(callback)

    def _emit(self, event: str):
        for callback in list(self._listeners[event]):
            callback()

    # Transport — overridden.

    def load(self, url: str):
        raise NotImplementedError

    async def play(self) -> bool:
        raise NotImplementedError

    def pause(self):
        raise NotImplementedError

    def clear(self):
        raise NotImplementedError

    @property
    def has_source(self) -> bool:
        raise NotImplementedError

    @property
    def position(self) -> float:
        raise NotImplementedError

    @position.setter
    def position(self, value: float):
        raise NotImplementedError

    @property
    def duration(self) -> Optional[float]:
        raise NotImplementedError


class FFplaySurface(AudioSurface):
    """Plays a URL through an ffplay subprocess.

    Pause/resume use SIGSTOP/SIGCONT so the position is preserved in place;
    seeking restarts ffplay at the new offset.
    """

    def __init__(self, loop_forever: bool = False, tick: float = 1.0, start_grace: float = 0.3):
        super().__init__()
        self.loop_forever = loop_forever
        self.tick = tick
        self.start_grace = start_grace
        self._proc: Optional[subprocess.Popen] = None
        self._source: Optional[str] = None
        self._duration: Optional[float] = None
        self._paused = False
        self._play_start = 0.0
        self._paused_at = 0.0
        self._total_paused = 0.0
        self._seek_offset = 0.0
        self._generation = 0
        self._watcher_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None

    # ── Source ─────────────────────────────────────────────────────────────────

    def load(self, url: str):
        self.clear()
        self._source = url

    def clear(self):
        """Terminate playback and forget the source."""
        self._kill()
        self._source = None
        self._duration = None
        self._seek_offset = 0.0

    @property
    def has_source(self) -> bool:
        return bool(self._source)

    # ── Playback ───────────────────────────────────────────────────────────────

    async def play(self) -> bool:
        if not self._source:
            return False
        if self._proc and self._proc.poll() is None:
            if self._paused:
                self._continue()
                self._emit("play")
            return True

        try:
            proc = self._spawn()
        except OSError as e:
            logger.error("ffplay could not start: %s", e)
            return False

        generation = self._generation
        await asyncio.sleep(self.start_grace)
        if generation != self._generation:
            # Another load()/play() replaced this process while it was starting.
            return False
        if proc.poll() not in (None, 0):
            logger.error("ffplay exited with %s for %s", proc.returncode, self._source)
            self._proc = None
            return False

        self._emit("play")
        if self._duration is None and not self.loop_forever:
            asyncio.create_task(self._load_metadata(self._source))
        return True

    def pause(self):
        """Suspend ffplay in place (SIGSTOP). Position is preserved."""
        if self._proc and self._proc.poll() is None and not self._paused:
            try:
                os.kill(self._proc.pid, signal.SIGSTOP)
                self._paused = True
                self._paused_at = time.monotonic()
            except ProcessLookupError:
                pass
            self._emit("pause")

    def _continue(self):
        try:
            os.kill(self._proc.pid, signal.SIGCONT)
            if self._paused_at > 0:
                self._total_paused += time.monotonic() - self._paused_at
                self._paused_at = 0.0
        except ProcessLookupError:
            pass
        self._paused = False

    @property
    def position(self) -> float:
        """Seconds into the source, accounting for pauses and seeks."""
        if self._play_start == 0:
            return self._seek_offset
        if self._paused and self._paused_at > 0:
            raw = self._paused_at - self._play_start - self._total_paused
        else:
            raw = time.monotonic() - self._play_start - self._total_paused
        return self._seek_offset + raw

    @position.setter
    def position(self, value: float):
        if not self._source:
            return
        was_running = self._proc is not None and self._proc.poll() is None
        was_paused = self._paused
        self._kill()
        self._seek_offset = max(0.0, value)
        if was_running:
            try:
                self._spawn()
            except OSError as e:
                logger.error("ffplay restart failed: %s", e)
                self._emit("error")
                return
            if was_paused:
                self.pause()
        self._emit("timeupdate")

    @property
    def duration(self) -> Optional[float]:
        return self._duration

    # ── Process management ─────────────────────────────────────────────────────

    def _spawn(self) -> subprocess.Popen:
        args = [FFPLAY_PATH, "-nodisp", "-loglevel", "error"]
        if self.loop_forever:
            args += ["-loop", "0"]
        else:
            args += ["-autoexit"]
        if self._seek_offset > 0:
            args += ["-ss", f"{self._seek_offset:.2f}"]
        args.append(self._source)

        self._proc = subprocess.Popen(
            args,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        self._generation += 1
        self._paused = False
        self._play_start = time.monotonic()
        self._paused_at = 0.0
        self._total_paused = 0.0

        proc = self._proc
        generation = self._generation
        self._watcher_task = asyncio.create_task(self._watch(proc, generation))
        if not self.loop_forever:
            self._tick_task = asyncio.create_task(self._ticker(generation))
        return proc

    def _kill(self):
        if self._proc and self._proc.poll() is None:
            if self._paused:
                # Must resume before terminate — SIGSTOP blocks SIGTERM
                try:
                    os.kill(self._proc.pid, signal.SIGCONT)
                except ProcessLookupError:
                    pass
            self._proc.terminate()
            try:
                self._proc.wait(timeout=2)
            except subprocess.TimeoutExpired:
                self._proc.kill()
        if self._proc is not None:
            self._seek_offset = self.position
        self._generation += 1
        for task in (self._watcher_task, self._tick_task):
            if task and not task.done():
                task.cancel()
        self._watcher_task = None
        self._tick_task = None
        self._proc = None
        self._paused = False
        self._play_start = 0.0
        self._paused_at = 0.0
        self._total_paused = 0.0

    async def _watch(self, proc: subprocess.Popen, generation: int):
        """Wait for ffplay to exit, then report ended or error."""
        loop = asyncio.get_running_loop()
        code = await loop.run_in_executor(None, proc.wait)
        if generation != self._generation:
            return  # killed on purpose
        self._proc = None
        self._seek_offset = 0.0
        self._play_start = 0.0
        self._emit("ended" if code == 0 else "error")

    async def _ticker(self, generation: int):
        while generation == self._generation:
            await asyncio.sleep(self.tick)
            if generation == self._generation and not self._paused:
                self._emit("timeupdate")

    async def _load_metadata(self, url: str):
        loop = asyncio.get_running_loop()
        duration = await loop.run_in_executor(None, probe_duration, url)
        if duration is not None and url == self._source:
            self._duration = duration
            self._emit("loadedmetadata")


class FocusChannel:
    """Silent looping audio that keeps the platform's audio focus while paused."""

    def __init__(self, surface: AudioSurface, silence_path: Path):
        self.surface = surface
        self.silence_path = silence_path

    async def hold(self):
        if not self.silence_path.exists():
            write_silence_wav(self.silence_path)
        self.surface.load(str(self.silence_path))
        if not await self.surface.play():
            logger.info("Could not start silence player")

    def release(self):
        self.surface.clear()
