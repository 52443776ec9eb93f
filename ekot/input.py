"""Terminal input — raw key reading mapped to presenter intents."""
import select as _sel
import sys
import termios
import tty
from typing import Optional


def _read_key() -> str:
    """Read one logical keypress in raw mode; arrow keys become 'left'/'right'."""
    fd = sys.stdin.fileno()
    old = termios.tcgetattr(fd)
    try:
        tty.setraw(fd)
        ch = sys.stdin.read(1)
        if ch == "\x1b":
            readable, _, _ = _sel.select([sys.stdin], [], [], 0.05)
            if readable:
                nxt = sys.stdin.read(1)
                if nxt == "[":
                    readable2, _, _ = _sel.select([sys.stdin], [], [], 0.05)
                    if readable2:
                        n2 = sys.stdin.read(1)
                        if n2 == "C":
                            return "right"
                        if n2 == "D":
                            return "left"
                return "ignore"
            return "esc"   # bare Escape
        return ch
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old)


def key_to_intent(key: str, tile_order: list[str], skip_step: float) -> Optional[tuple[str, dict]]:
    """Map a keypress to an (intent, data) pair; None for quit or unbound keys.

    Digits pick tiles in the on-screen order, not the configured slot order.
    """
    if key == " ":
        return "toggle", {}
    if key == "left":
        return "skip", {"delta": -skip_step}
    if key == "right":
        return "skip", {"delta": skip_step}
    if key == "s":
        return "stop", {}
    if key == "r":
        return "refresh", {}
    if key.isdigit() and 1 <= int(key) <= len(tile_order):
        return "play", {"slot": tile_order[int(key) - 1]}
    return None
