"""
Shared fakes for the Ekot core tests.

The core only talks to its collaborators through small interfaces, so the
tests swap in a settable clock, a scripted feed, an in-memory audio surface
and a hub that records every event.
"""
from datetime import date, datetime, timezone

import pytest

from ekot.clock import TimeSource
from ekot.config import SLOTS
from ekot.feed import FeedItem, FeedResult
from ekot.player import AudioSurface
from ekot.store import Broadcast, BroadcastStore
from ekot.web.state import EventHub

TZ = "Europe/Stockholm"
TODAY = date(2026, 10, 19)


def utc(hour: int, minute: int = 0, day: int = 19) -> datetime:
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


def make_broadcast(slot: str, ts: float, url: str = "https://example.org/a.mp3") -> Broadcast:
    return Broadcast(slot, f"Ekot {slot}", datetime.fromtimestamp(ts, tz=timezone.utc), url)


class FakeClock(TimeSource):
    """Local Stockholm time that tests move by hand."""

    def __init__(self, day: int = 19, hour: int = 12, minute: int = 0):
        super().__init__(TZ)
        self.set(hour, minute, day)

    def set(self, hour: int, minute: int = 0, day: int = 19):
        self.instant = datetime(2026, 10, day, hour, minute, tzinfo=self.tz)

    def now(self, instant=None):
        return super().now(instant or self.instant)


class FakeFeed:
    url = "https://feed.test/podfiles"

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def push(self, outcome):
        self.outcomes.append(outcome)

    async def fetch(self, force: bool = False):
        self.calls.append(force)
        outcome = self.outcomes.pop(0) if self.outcomes else FeedResult([])
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def check(self) -> bool:
        return True


def feed_result(*entries) -> FeedResult:
    """entries: (title, published_utc, url) tuples."""
    return FeedResult([FeedItem(title, published, url) for title, published, url in entries])


class FakeSurface(AudioSurface):
    def __init__(self, accept: bool = True, duration: float | None = 600.0):
        super().__init__()
        self.accept = accept
        self.source = None
        self.playing = False
        self._position = 0.0
        self._duration = duration
        self.play_calls = 0

    def load(self, url):
        self.source = url
        self.playing = False
        self._position = 0.0

    async def play(self):
        self.play_calls += 1
        if not self.accept or not self.source:
            return False
        self.playing = True
        self._emit("play")
        return True

    def pause(self):
        if self.playing:
            self.playing = False
            self._emit("pause")

    def clear(self):
        self.source = None
        self.playing = False
        self._position = 0.0

    @property
    def has_source(self):
        return bool(self.source)

    @property
    def position(self):
        return self._position

    @position.setter
    def position(self, value):
        self._position = value

    @property
    def duration(self):
        return self._duration if self.source else None

    # Test hooks — events the real transport would raise.

    def finish(self):
        self.playing = False
        self._emit("ended")

    def fail(self):
        self.playing = False
        self._emit("error")


class FakeFocus:
    def __init__(self):
        self.held = False
        self.holds = 0

    async def hold(self):
        self.held = True
        self.holds += 1

    def release(self):
        self.held = False


class RecordingHub(EventHub):
    def __init__(self):
        super().__init__()
        self.events = []

    def emit(self, event, data):
        self.events.append((event, data))
        super().emit(event, data)

    def names(self):
        return [name for name, _ in self.events]


@pytest.fixture
def slots():
    return SLOTS


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return BroadcastStore(TODAY)


@pytest.fixture
def hub():
    return RecordingHub()


@pytest.fixture
def surface():
    return FakeSurface()


@pytest.fixture
def focus():
    return FakeFocus()


@pytest.fixture(autouse=True)
def errors_log(tmp_path, monkeypatch):
    """Keep structured error entries out of the project's output dir."""
    import ekot.errors

    log = tmp_path / "errors.log"
    monkeypatch.setattr(ekot.errors, "OUTPUT_DIR", tmp_path)
    monkeypatch.setattr(ekot.errors, "ERRORS_LOG", log)
    return log
