import asyncio

import httpx
import pytest

from conftest import FakeClock, FakeFeed, TODAY, feed_result, make_broadcast, utc
from ekot import scheduler as scheduler_mod
from ekot.clock import Now
from ekot.config import POLL_ACTIVE, POLL_EXTENDED, POLL_IDLE, SLOTS
from ekot.errors import FetchError
from ekot.feed import NOT_MODIFIED, FeedClient
from ekot.scheduler import PollScheduler, compute_interval
from ekot.store import BroadcastStore


def at(hour, minute):
    return Now(TODAY, hour, minute)


@pytest.mark.parametrize("hour,minute,expected", [
    (8, 25, POLL_ACTIVE),     # diff 5
    (8, 20, POLL_ACTIVE),     # diff 0
    (8, 30, POLL_ACTIVE),     # diff 10
    (8, 35, POLL_EXTENDED),   # diff 15
    (8, 50, POLL_EXTENDED),   # diff 30
    (8, 55, POLL_IDLE),       # diff 35
    (8, 19, POLL_IDLE),       # before poll start
])
def test_compute_interval_windows(store, hour, minute, expected):
    assert compute_interval(at(hour, minute), store, SLOTS) == expected


def test_compute_interval_skips_present_slots(store):
    store.merge({"08:00": make_broadcast("08:00", 100)})
    assert compute_interval(at(8, 25), store, SLOTS) == POLL_IDLE


def test_compute_interval_late_slot_still_governs(store):
    # 12:30 broadcast is late (diff 15 from 13:00), 08:00 long gone.
    assert compute_interval(at(13, 15), store, SLOTS) == POLL_EXTENDED


def test_compute_interval_later_slot_in_window():
    # 16:45 polls from 17:05; 17:45 from 18:10. At 18:12 16:45 is out of
    # its windows, so 17:45 (diff 2) decides.
    store = BroadcastStore(TODAY)
    assert compute_interval(at(18, 12), store, SLOTS) == POLL_ACTIVE
    assert compute_interval(at(17, 30), store, SLOTS) == POLL_EXTENDED


def _scheduler(store, feed, clock, hub, **kwargs):
    return PollScheduler(store, feed, clock, hub, slots=SLOTS, **kwargs)


def test_refresh_merges_and_notifies(store, hub):
    feed = FakeFeed(feed_result(("Ekot 08:00", utc(6, 5), "https://x/a.mp3")))
    sched = _scheduler(store, feed, FakeClock(), hub)

    changed = asyncio.run(sched.refresh())

    assert changed is True
    assert "08:00" in store
    assert hub.names() == ["broadcasts"]
    assert feed.calls == [False]


def test_refresh_fetch_error_leaves_store(store, hub):
    store.merge({"08:00": make_broadcast("08:00", 100)})
    feed = FakeFeed(FetchError("HTTP 503"))
    sched = _scheduler(store, feed, FakeClock(), hub)

    changed = asyncio.run(sched.refresh())

    assert changed is False
    assert store.labels() == ["08:00"]
    assert hub.names() == ["error"]
    assert sched.last_error == "HTTP 503"


def test_refresh_not_modified_is_quiet(store, hub):
    sched = _scheduler(store, FakeFeed(NOT_MODIFIED), FakeClock(), hub)
    assert asyncio.run(sched.refresh()) is False
    assert hub.events == []


def test_day_change_resets_before_merge(hub):
    store = BroadcastStore(TODAY)
    store.merge({"17:45": make_broadcast("17:45", 100)})
    clock = FakeClock(day=20, hour=8, minute=25)
    feed = FakeFeed(feed_result(
        ("Ekot 17:45", utc(16, 0, day=19), "https://x/yesterday.mp3"),
        ("Ekot 08:00", utc(6, 5, day=20), "https://x/today.mp3"),
    ))
    sched = _scheduler(store, feed, clock, hub)

    asyncio.run(sched.refresh())

    assert store.labels() == ["08:00"]
    assert store.date.day == 20
    assert hub.names()[:2] == ["day_reset", "broadcasts"]


def test_fetches_are_serialized(store, hub):
    in_flight = 0
    peak = 0

    class SlowFeed(FakeFeed):
        async def fetch(self, force=False):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return await super().fetch(force)

    sched = _scheduler(store, SlowFeed(), FakeClock(), hub)

    async def scenario():
        await asyncio.gather(sched.refresh(), sched.refresh(force=True), sched.refresh())

    asyncio.run(scenario())
    assert peak == 1


def test_schedule_loop_rearms_and_cancels(store, hub, monkeypatch):
    monkeypatch.setattr(scheduler_mod, "POLL_IDLE", 0.01)
    feed = FakeFeed()
    sched = _scheduler(store, feed, FakeClock(hour=11), hub)

    async def scenario():
        sched.schedule()
        await asyncio.sleep(0.1)
        assert sched.pending
        sched.cancel()
        calls = len(feed.calls)
        await asyncio.sleep(0.05)
        return calls

    calls = asyncio.run(scenario())
    assert calls >= 2
    assert len(feed.calls) == calls
    assert not sched.pending


def test_schedule_replaces_pending_timer(store, hub):
    sched = _scheduler(store, FakeFeed(), FakeClock(), hub)

    async def scenario():
        sched.schedule()
        first = sched._timer
        sched.schedule()
        await asyncio.sleep(0)
        assert first.cancelled() or first.done()
        assert sched._timer is not first
        sched.cancel()

    asyncio.run(scenario())


def test_loop_survives_fetch_errors(store, hub, monkeypatch):
    monkeypatch.setattr(scheduler_mod, "POLL_IDLE", 0.01)
    feed = FakeFeed(FetchError("boom"), FetchError("boom"),
                    feed_result(("Ekot 12:30", utc(10, 45), "https://x/b.mp3")))
    sched = _scheduler(store, feed, FakeClock(hour=11), hub)

    async def scenario():
        sched.schedule()
        await asyncio.sleep(0.1)
        sched.cancel()

    asyncio.run(scenario())
    assert "12:30" in store
    assert hub.names().count("error") == 2


def test_day_watcher_resets_and_refreshes(hub):
    store = BroadcastStore(TODAY)
    store.merge({"17:45": make_broadcast("17:45", 100)})
    clock = FakeClock(day=20, hour=0, minute=1)
    feed = FakeFeed()
    sched = _scheduler(store, feed, clock, hub, day_check_interval=0.01)

    async def scenario():
        sched.start()
        await asyncio.sleep(0.05)
        sched.cancel()

    asyncio.run(scenario())
    assert len(store) == 0
    assert hub.names().count("day_reset") == 1
    assert feed.calls


def test_refresh_with_malformed_feed_dates_keeps_store(store, hub):
    payload = {"podfiles": [
        {"title": "Ekot 08:00", "publishdateutc": 12345, "url": "https://x/a.mp3"},
        {"title": "Ekot 12:30", "publishdateutc": "/Date(99999999999999999999)/", "url": "https://x/b.mp3"},
    ]}
    feed = FeedClient(url="https://sr.test/podfiles",
                      transport=httpx.MockTransport(lambda request: httpx.Response(200, json=payload)))
    sched = _scheduler(store, feed, FakeClock(), hub)

    assert asyncio.run(sched.refresh()) is False
    assert len(store) == 0
    assert sched.last_error is None


def test_loop_survives_unexpected_errors(store, hub, monkeypatch):
    monkeypatch.setattr(scheduler_mod, "POLL_IDLE", 0.01)
    feed = FakeFeed(RuntimeError("feed adapter bug"),
                    feed_result(("Ekot 12:30", utc(10, 45), "https://x/b.mp3")))
    sched = _scheduler(store, feed, FakeClock(hour=11), hub)

    async def scenario():
        sched.schedule()
        await asyncio.sleep(0.1)
        still_pending = sched.pending
        sched.cancel()
        return still_pending

    assert asyncio.run(scenario()) is True
    assert "12:30" in store
    assert "error" in hub.names()
    assert sched.last_error is None
