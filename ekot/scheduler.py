"""Adaptive feed polling.

Polls fast while a broadcast is due and missing, slower while it is late,
and idles otherwise. One asyncio task owns the wait/fetch loop; fetches are
serialized by a lock so a forced refresh and a timer-driven one never
overlap.
"""
import asyncio
import logging
from typing import Optional, Sequence

from .clock import Now, Slot, TimeSource
from .config import (
    ACTIVE_WINDOW,
    DAY_CHECK_INTERVAL,
    EXTENDED_WINDOW,
    POLL_ACTIVE,
    POLL_EXTENDED,
    POLL_IDLE,
    SLOTS,
)
from .errors import FetchError, format_error
from .feed import FeedClient, FeedResult
from .store import BroadcastStore, broadcasts_from_items

logger = logging.getLogger(__name__)


def compute_interval(
    now: Now,
    store: BroadcastStore,
    slots: Sequence[Slot] = SLOTS,
    active_window: int = ACTIVE_WINDOW,
    extended_window: int = EXTENDED_WINDOW,
) -> int:
    """Seconds until the next poll. The first absent slot inside a window wins."""
    for slot in slots:
        if slot.label in store:
            continue
        diff = now.minutes - slot.poll_start_minutes
        if 0 <= diff <= active_window:
            return POLL_ACTIVE
        if active_window < diff <= extended_window:
            return POLL_EXTENDED
    return POLL_IDLE


class PollScheduler:
    def __init__(
        self,
        store: BroadcastStore,
        feed: FeedClient,
        clock: TimeSource,
        hub,
        slots: Sequence[Slot] = SLOTS,
        day_check_interval: float = DAY_CHECK_INTERVAL,
    ):
        self.store = store
        self.feed = feed
        self.clock = clock
        self.hub = hub
        self.slots = slots
        self.day_check_interval = day_check_interval

        self._timer: Optional[asyncio.Task] = None
        self._day_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self.next_interval: Optional[int] = None
        self.last_error: Optional[str] = None

    # ── Interval ─────────────────────────────────────────────────────────────

    def compute_interval(self, now: Optional[Now] = None) -> int:
        return compute_interval(now or self.clock.now(), self.store, self.slots)

    # ── Timer ────────────────────────────────────────────────────────────────

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def fetching(self) -> bool:
        return self._lock.locked()

    def schedule(self):
        """(Re)arm the poll timer. Any pending timer is cancelled first."""
        self._cancel_timer()
        self._timer = asyncio.create_task(self._poll_loop())

    async def _poll_loop(self):
        while True:
            interval = self.compute_interval()
            self.next_interval = interval
            logger.debug("Next poll in %ds", interval)
            await asyncio.sleep(interval)
            await self._refresh_guarded()

    def _cancel_timer(self):
        if self._timer and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        self.next_interval = None

    def start(self):
        self.schedule()
        if self._day_task is None or self._day_task.done():
            self._day_task = asyncio.create_task(self._watch_day())

    def cancel(self):
        """Teardown: stop polling and the day watcher."""
        self._cancel_timer()
        if self._day_task and not self._day_task.done():
            self._day_task.cancel()
        self._day_task = None

    async def _watch_day(self):
        # Catches midnight even while the poll timer sits in a long idle wait.
        while True:
            await asyncio.sleep(self.day_check_interval)
            if self._lock.locked():
                continue
            today = self.clock.today()
            if self.store.reset_if_day_changed(today):
                await self.hub.broadcast("day_reset", {"date": today.isoformat()})
                await self._notify()
                await self._refresh_guarded()
                self.schedule()

    # ── Fetch cycle ──────────────────────────────────────────────────────────

    async def refresh(self, force: bool = False) -> bool:
        """One cycle: day check, fetch, merge, notify. Returns True if the store changed."""
        async with self._lock:
            today = self.clock.today()
            if self.store.reset_if_day_changed(today):
                await self.hub.broadcast("day_reset", {"date": today.isoformat()})
                await self._notify()

            try:
                outcome = await self.feed.fetch(force=force)
            except FetchError as e:
                self.last_error = str(e)
                msg = format_error("fetch", str(e), {"url": self.feed.url, "force": force})
                await self.hub.broadcast("error", {"message": msg})
                return False

            self.last_error = None
            if not isinstance(outcome, FeedResult):
                return False

            incoming = broadcasts_from_items(outcome.items, today, self.slots, self.clock)
            if not incoming:
                return False
            self.store.merge(incoming)
            logger.info("Merged broadcasts: %s", ", ".join(sorted(incoming)))
            await self._notify()
            return True

    async def _refresh_guarded(self):
        """refresh() for the background tasks: no failure may end the loop."""
        try:
            await self.refresh()
        except Exception as e:
            self.last_error = str(e) or type(e).__name__
            msg = format_error("poll", repr(e), {"url": getattr(self.feed, "url", None)})
            await self.hub.broadcast("error", {"message": msg})

    async def refresh_now(self, force: bool = True) -> bool:
        """Presenter-initiated refresh; re-arms the timer from the new store state."""
        changed = await self.refresh(force=force)
        self.schedule()
        return changed

    async def _notify(self):
        await self.hub.broadcast("broadcasts", self.store.snapshot(self.slots))
