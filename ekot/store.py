"""Module 2 — Broadcast Store (today only, keyed by slot label)"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Iterable, Optional, Sequence

from .clock import Slot, TimeSource
from .feed import FeedItem
from .utils import extract_slot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Broadcast:
    slot: str
    title: str
    published: datetime
    audio_url: str

    @property
    def timestamp(self) -> float:
        return self.published.timestamp()

    def to_dict(self) -> dict:
        return {
            "slot": self.slot,
            "title": self.title,
            "published": self.published.isoformat(),
            "audio_url": self.audio_url,
        }


def broadcasts_from_items(
    items: Iterable[FeedItem],
    today: date,
    slots: Sequence[Slot],
    clock: TimeSource,
) -> dict[str, Broadcast]:
    """Keep today's items that name a slot in their title, keyed by that slot."""
    found: dict[str, Broadcast] = {}
    for item in items:
        if clock.local_date(item.published) != today:
            continue
        label = extract_slot(item.title, slots)
        if not label:
            continue
        found[label] = Broadcast(label, item.title, item.published, item.audio_url)
    return found


class BroadcastStore:
    def __init__(self, today: date, on_reset: Optional[Callable[[], None]] = None):
        self.date = today
        self._broadcasts: dict[str, Broadcast] = {}
        # Set by the application root; clears playback on rollover.
        self.on_reset = on_reset

    def reset_if_day_changed(self, today: date) -> bool:
        if today == self.date:
            return False
        logger.info("Day changed %s -> %s, clearing %d broadcasts", self.date, today, len(self._broadcasts))
        self._broadcasts = {}
        if self.on_reset:
            self.on_reset()
        self.date = today
        return True

    def merge(self, incoming: dict[str, Broadcast]):
        # Last fetched wins, even if its timestamp is older than the entry it replaces.
        for label, broadcast in incoming.items():
            self._broadcasts[label] = broadcast

    def find_latest(self, slot_order: Sequence[Slot]) -> Optional[str]:
        latest = None
        latest_ts = None
        for slot in slot_order:
            broadcast = self._broadcasts.get(slot.label)
            if broadcast is None:
                continue
            if latest_ts is None or broadcast.timestamp > latest_ts:
                latest_ts = broadcast.timestamp
                latest = slot.label
        return latest

    def ordered_ring(self, slot_order: Sequence[Slot]) -> list[str]:
        """Tile order for a 2x2 grid: latest broadcast top-left, then counter-clockwise.

        Grid positions are TL, TR, BL, BR = ring[0], ring[3], ring[1], ring[2].
        """
        labels = [s.label for s in slot_order]
        latest = self.find_latest(slot_order)
        if latest:
            i = labels.index(latest)
            labels = labels[i:] + labels[:i]
        if len(labels) != 4:
            return labels
        return [labels[0], labels[3], labels[1], labels[2]]

    # ── Read access ─────────────────────────────────────────────────────────

    def get(self, label: Optional[str]) -> Optional[Broadcast]:
        if label is None:
            return None
        return self._broadcasts.get(label)

    def labels(self) -> list[str]:
        return list(self._broadcasts)

    def __contains__(self, label) -> bool:
        return label in self._broadcasts

    def __len__(self) -> int:
        return len(self._broadcasts)

    def snapshot(self, slot_order: Sequence[Slot]) -> dict:
        latest = self.find_latest(slot_order)
        return {
            "date": self.date.isoformat(),
            "latest": latest,
            "order": self.ordered_ring(slot_order),
            "broadcasts": {label: b.to_dict() for label, b in self._broadcasts.items()},
        }
