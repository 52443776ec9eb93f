"""Ekot radio — entry point."""
import argparse
import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler

from rich.logging import RichHandler

from ekot.config import APP_LOG, LOG_LEVEL, OUTPUT_DIR, SKIP_STEP, WEB_HOST, WEB_PORT
from ekot.engine import EkotEngine
from ekot.feed import FeedClient
from ekot.input import _read_key, key_to_intent
from ekot.ui import (
    console,
    print_header,
    print_help,
    print_message,
    print_status_line,
    print_tiles,
)
from ekot.web.state import EventHub

logger = logging.getLogger("ekot")

_REDRAW_EVENTS = ("broadcasts", "day_reset", "playback_state", "ended")


def setup_logging(level: str = LOG_LEVEL):
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    handlers = [
        RotatingFileHandler(APP_LOG, maxBytes=2_000_000, backupCount=3, encoding="utf-8"),
        RichHandler(console=console, show_path=False, level=logging.WARNING),
    ]
    handlers[0].setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logging.basicConfig(level=level, handlers=handlers, force=True)


async def _show_events(engine: EkotEngine, queue: asyncio.Queue):
    """Redraw on state changes, print notices and errors as they arrive."""
    while True:
        event, data = await queue.get()
        if event in _REDRAW_EVENTS:
            snapshot = engine.get_snapshot()
            print_tiles(snapshot)
            print_status_line(snapshot["playback"])
        elif event == "notice":
            print_message(data["message"])
        elif event == "error":
            print_message(data["message"], is_error=True)


async def run_terminal(engine: EkotEngine):
    print_header()
    print_help()

    queue = engine.hub.subscribe("terminal")
    run_task = asyncio.create_task(engine.run())
    show_task = asyncio.create_task(_show_events(engine, queue))

    loop = asyncio.get_running_loop()
    try:
        while True:
            key = await loop.run_in_executor(None, _read_key)
            if key in ("q", "\x03", "\x04"):
                break
            order = engine.store.ordered_ring(engine.slots)
            intent = key_to_intent(key, order, SKIP_STEP)
            if intent:
                await engine.dispatch(*intent)
    finally:
        await engine.stop()
        for task in (run_task, show_task):
            if not task.done():
                task.cancel()
        engine.hub.unsubscribe("terminal")


def run_web(host: str, port: int, engine: EkotEngine):
    from uvicorn import Config, Server

    from ekot.web.server import create_app

    config = Config(create_app(engine), host=host, port=port, log_level=LOG_LEVEL.lower())
    Server(config).run()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Today's Ekot broadcasts from Sveriges Radio")
    parser.add_argument("--web", action="store_true", help="serve the WebSocket/JSON presenter instead of the terminal UI")
    parser.add_argument("--host", default=WEB_HOST)
    parser.add_argument("--port", type=int, default=WEB_PORT)
    parser.add_argument("--rss", action="store_true", help="read the podcast RSS feed instead of the JSON API")
    parser.add_argument("--log-level", default=LOG_LEVEL)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level.upper())

    hub = EventHub()
    feed = FeedClient(fmt="rss" if args.rss else "json")

    if args.web:
        from ekot.media import WebMediaControls

        run_web(args.host, args.port, EkotEngine(hub, feed=feed, media=WebMediaControls(hub)))
        return 0

    engine = EkotEngine(hub, feed=feed)
    try:
        asyncio.run(run_terminal(engine))
    except KeyboardInterrupt:
        pass
    console.print("\n  [bold cyan]♪[/bold cyan]  Hej då.\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
