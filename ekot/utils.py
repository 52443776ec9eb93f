"""Small helpers shared by the store, controller and presenters."""
import math
from typing import Iterable, Optional

from .clock import Slot


def fmt_time(seconds: Optional[float]) -> str:
    if seconds is None or math.isnan(seconds) or math.isinf(seconds):
        return "0:00"
    m, s = divmod(int(seconds), 60)
    return f"{m}:{s:02d}"


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def extract_slot(title: str, slots: Iterable[Slot]) -> Optional[str]:
    """Return the first slot label that appears anywhere in the title.

    Plain substring match: a label that happens to occur in unrelated text
    will match too.
    """
    for slot in slots:
        if slot.label in title:
            return slot.label
    return None
