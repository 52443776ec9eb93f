"""Starlette app — JSON routes + WebSocket presenter channel."""
import asyncio
import contextlib
import logging
import uuid
from typing import Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from ..config import APP_VERSION
from ..engine import INTENTS, EkotEngine
from ..media import WebMediaControls
from .state import EventHub

logger = logging.getLogger(__name__)


def _engine(request) -> EkotEngine:
    return request.app.state.engine


# ── Health ───────────────────────────────────────────────────────────────────

async def health(request: Request):
    engine = _engine(request)
    feed_ok = await engine.feed.check()
    checks = {
        "feed": {"ok": feed_ok, "url": engine.feed.url},
        "poller": {"ok": engine.scheduler.last_error is None, "error": engine.scheduler.last_error},
    }
    all_ok = all(c["ok"] for c in checks.values())
    return JSONResponse({
        "status": "ok" if all_ok else "degraded",
        "version": APP_VERSION,
        "clients": request.app.state.hub.client_count,
        "checks": checks,
    })


# ── Broadcasts ───────────────────────────────────────────────────────────────

async def list_broadcasts(request: Request):
    engine = _engine(request)
    return JSONResponse(engine.store.snapshot(engine.slots))


async def playback(request: Request):
    return JSONResponse(_engine(request).controller.snapshot())


async def refresh(request: Request):
    engine = _engine(request)
    await engine.dispatch("refresh")
    return JSONResponse(engine.store.snapshot(engine.slots))


# ── WebSocket ────────────────────────────────────────────────────────────────

async def websocket_endpoint(websocket: WebSocket):
    engine: EkotEngine = websocket.app.state.engine
    hub: EventHub = websocket.app.state.hub

    await websocket.accept()
    client_id = str(uuid.uuid4())
    queue = hub.subscribe(client_id)
    logger.info("WS connected: %s", client_id)

    await websocket.send_json({"type": "sync", "data": engine.get_snapshot()})

    # Intents in, hub events out; whichever side ends first closes the session.
    tasks = [
        asyncio.create_task(_read_intents(websocket, engine, client_id)),
        asyncio.create_task(_push_events(websocket, queue, client_id)),
    ]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        hub.unsubscribe(client_id)
        logger.info("WS disconnected: %s", client_id)


async def _read_intents(websocket: WebSocket, engine: EkotEngine, client_id: str):
    try:
        while True:
            await _handle_ws_message(engine, await websocket.receive_json())
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WS %s reader error: %s", client_id, e)


async def _push_events(websocket: WebSocket, queue: asyncio.Queue, client_id: str):
    try:
        while True:
            event, data = await queue.get()
            await websocket.send_json({"type": event, "data": data})
    except Exception as e:
        logger.debug("WS %s writer stopped: %r", client_id, e)


async def _handle_ws_message(engine: EkotEngine, data: dict):
    """Route incoming WebSocket messages to engine intents."""
    if not isinstance(data, dict):
        return
    msg_type = data.get("type", "")
    if msg_type not in INTENTS:
        logger.warning("Unknown WS message type: %s", msg_type)
        return
    await engine.dispatch(msg_type, data)


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(engine: Optional[EkotEngine] = None) -> Starlette:
    if engine is None:
        hub = EventHub()
        engine = EkotEngine(hub, media=WebMediaControls(hub))

    @contextlib.asynccontextmanager
    async def lifespan(app):
        task = asyncio.create_task(engine.run())
        logger.info("Ekot engine started")
        try:
            yield
        finally:
            await engine.stop()
            if not task.done():
                task.cancel()
            logger.info("Ekot engine stopped")

    routes = [
        Route("/api/health", health),
        Route("/api/broadcasts", list_broadcasts),
        Route("/api/playback", playback),
        Route("/api/refresh", refresh, methods=["POST"]),
        WebSocketRoute("/ws", websocket_endpoint),
    ]

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.engine = engine
    app.state.hub = engine.hub
    return app
