from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager, suppress
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from tycoon.exceptions import MonopolyError, NotFoundError
from tycoon.room import RoomSettings

from .dispatcher import EventDispatcher
from .registry import RoomRegistry
from .schemas import (
    CreateRoomRequest,
    JoinRoomRequest,
    JoinRoomResponse,
    LoadRequest,
    PlayerRequest,
    ReadyRequest,
    RoomListResponse,
    RoomOut,
    SaveResponse,
)
from .settings import ServerSettings, get_settings
from .storage import SnapshotStore

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "validation": 422,
    "authorization": 403,
    "insufficient_funds": 402,
    "state_conflict": 409,
    "not_found": 404,
}


async def _every(interval: float, job: Callable[[], Awaitable[object]], name: str) -> None:
    """Run ``job`` forever with ``interval`` seconds between runs."""
    while True:
        await asyncio.sleep(interval)
        try:
            await job()
        except MonopolyError as exc:
            logger.error("%s failed: %s", name, exc.message)
        except Exception:
            logger.exception("%s crashed; retrying in %.1fs", name, interval)


def create_app(settings: Optional[ServerSettings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle - startup and shutdown."""
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        logger.info("Starting Tycoon room server")
        await app.state.store.init()

        tasks = [
            asyncio.create_task(
                _every(settings.auction_sweep_interval, app.state.dispatcher.sweep_auctions, "auction sweep")
            ),
            asyncio.create_task(
                _every(
                    settings.room_inactivity_timeout / 4,
                    lambda: app.state.registry.cleanup_inactive_rooms(settings.room_inactivity_timeout),
                    "room cleanup",
                )
            ),
        ]
        if settings.autosave_interval > 0:
            tasks.append(asyncio.create_task(_every(settings.autosave_interval, app.state.dispatcher.autosave, "autosave")))

        yield

        logger.info("Shutting down Tycoon room server")
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        await app.state.store.close()
        logger.info("Shutdown complete")

    app = FastAPI(title="Tycoon Rooms", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = RoomRegistry(
        min_players=settings.min_players,
        max_players=settings.max_players,
        max_rooms=settings.max_rooms,
        room_code_length=settings.room_code_length,
    )
    app.state.store = SnapshotStore(settings.database_url, echo=settings.db_echo)
    app.state.dispatcher = EventDispatcher(
        app.state.registry,
        app.state.store,
        history_window=settings.history_window,
        queue_size=settings.outbound_queue_size,
    )

    @app.exception_handler(MonopolyError)
    async def monopoly_error_handler(request: Request, exc: MonopolyError) -> JSONResponse:
        status = STATUS_BY_KIND.get(exc.kind, 500)
        if status == 500:
            logger.error("Unhandled %s on %s: %s", exc.kind, request.url.path, exc.message)
        return JSONResponse(status_code=status, content=exc.to_dict())

    registry: RoomRegistry = app.state.registry
    dispatcher: EventDispatcher = app.state.dispatcher

    # ---- Rooms ----

    @app.post("/rooms", response_model=JoinRoomResponse)
    async def create_room(req: CreateRoomRequest):
        room, host = await registry.create_room(
            req.host_name,
            settings=RoomSettings(**req.settings.model_dump()),
            is_public=req.is_public,
            max_players=req.max_players,
        )
        return {"room_code": room.code, "player_id": host.player_id, "room": room.to_dict()}

    @app.get("/rooms", response_model=RoomListResponse)
    async def list_rooms():
        return {"rooms": registry.public_rooms()}

    @app.get("/rooms/{code}", response_model=RoomOut)
    async def get_room(code: str):
        return registry.get_room(code).to_dict()

    @app.post("/rooms/{code}/join", response_model=JoinRoomResponse)
    async def join_room(code: str, req: JoinRoomRequest):
        participant = await registry.join_room(code, req.name)
        room = registry.get_room(code)
        return {"room_code": room.code, "player_id": participant.player_id, "room": room.to_dict()}

    @app.post("/rooms/{code}/leave")
    async def leave_room(code: str, req: PlayerRequest):
        room = await registry.leave_room(code, req.player_id)
        return {"room_code": code.upper(), "deleted": room is None}

    @app.post("/rooms/{code}/ready", response_model=RoomOut)
    async def set_ready(code: str, req: ReadyRequest):
        await registry.set_ready(code, req.player_id, req.ready)
        return registry.get_room(code).to_dict()

    @app.post("/rooms/{code}/start")
    async def start_game(code: str, req: PlayerRequest):
        message = await dispatcher.start_game(code, req.player_id)
        return {"room_code": message["room_code"], "snapshot": message["snapshot"]}

    # ---- Snapshots ----

    @app.get("/rooms/{code}/snapshot")
    async def get_snapshot(code: str):
        return await dispatcher.request_snapshot(code)

    @app.post("/rooms/{code}/save", response_model=SaveResponse)
    async def save_game(code: str):
        version = await dispatcher.save_snapshot(code)
        return {"room_code": code.upper(), "saved": True, "version": version}

    @app.post("/rooms/{code}/load", response_model=RoomOut)
    async def load_game(code: str, req: Optional[LoadRequest] = None):
        room = await dispatcher.load_snapshot(code, req.snapshot if req else None)
        return room.to_dict()

    @app.get("/health")
    async def health():
        return {"status": "ok", "rooms": len(registry), "games": len(registry.running_games())}

    # ---- WebSocket ----

    @app.websocket("/ws/rooms/{code}")
    async def ws_room(websocket: WebSocket, code: str):
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        try:
            queue = dispatcher.connect(connection_id, code)
        except NotFoundError:
            await websocket.close(code=4404)
            return

        async def sender():
            try:
                while True:
                    msg = await queue.get()
                    await websocket.send_json(msg)
            except WebSocketDisconnect:
                return
            except Exception:
                logger.exception("Sender for connection %s stopped", connection_id)

        async def heartbeat():
            try:
                while True:
                    await asyncio.sleep(settings.heartbeat_interval)
                    await websocket.send_json({"type": "heartbeat"})
            except WebSocketDisconnect:
                return
            except Exception:
                logger.exception("Heartbeat for connection %s stopped", connection_id)

        sender_task = asyncio.create_task(sender())
        hb_task = asyncio.create_task(heartbeat())
        try:
            while True:
                try:
                    payload = await websocket.receive_json()
                except WebSocketDisconnect:
                    break
                except ValueError:
                    with suppress(asyncio.QueueFull):
                        queue.put_nowait({"type": "error", "kind": "validation", "message": "messages must be JSON"})
                    continue
                await dispatcher.dispatch(connection_id, payload)
        finally:
            sender_task.cancel()
            hb_task.cancel()
            await dispatcher.disconnect(connection_id)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run("server.app:app", host=_settings.host, port=_settings.port)
