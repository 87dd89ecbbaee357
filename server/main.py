"""FastAPI WebSocket server for the two-player stacking card game."""

import logging
import os
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from config import config
from handlers import HANDLERS, ConnectionContext, handle_player_disconnect
from logging_config import player_id_var, room_code_var, setup_logging
from room import Room, RoomManager
from routers.health import router as health_router

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


async def broadcast_game_state(room: Room) -> None:
    """Deliver pending game events, then each player's own snapshot."""
    await room.publish()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the room registry for this process and tear it down on exit."""
    app.state.room_manager = RoomManager()
    logger.info(f"Card game server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    await _close_all_websockets(app.state.room_manager)
    for code in list(app.state.room_manager.rooms):
        app.state.room_manager.remove_room(code)
    logger.info("Shutdown complete")


async def _close_all_websockets(room_manager: RoomManager) -> None:
    """Close all active WebSocket connections gracefully."""
    for room in list(room_manager.rooms.values()):
        for connection in room.connections.values():
            if connection.websocket:
                try:
                    await connection.websocket.close(code=1001, reason="Server shutting down")
                except Exception as e:
                    logger.debug(f"Closing socket of {connection.id} failed: {e}")
    logger.info("All WebSocket connections closed")


app = FastAPI(
    title="Stack Card Game",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(health_router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    logger.debug(f"WebSocket connected as {connection_id}")

    ctx = ConnectionContext(
        websocket=websocket,
        connection_id=connection_id,
        player_id=connection_id,
    )

    # Shared dependencies passed to every handler
    handler_deps = dict(
        room_manager=websocket.app.state.room_manager,
        broadcast_game_state=broadcast_game_state,
        timers=config.timers,
    )

    player_id_var.set(connection_id)
    try:
        while True:
            try:
                data = await websocket.receive_json()
            except (ValueError, KeyError, TypeError):
                # Binary frames raise KeyError, bad JSON raises ValueError
                logger.debug(f"Ignoring non-JSON frame from {connection_id}")
                continue
            # Frames are {"type": <action>, "data": <payload>}
            if not isinstance(data, dict):
                continue
            action = data.get("type")
            payload = data.get("data", {})
            handler = HANDLERS.get(action) if isinstance(action, str) else None
            if not handler or not isinstance(payload, dict):
                continue
            room_code_var.set(ctx.current_room.code if ctx.current_room else None)
            try:
                await handler(payload, ctx, **handler_deps)
            except Exception:
                logger.exception(f"Handler {action} failed", extra={"action": action})
    except WebSocketDisconnect:
        logger.debug(f"WebSocket {connection_id} disconnected")
    except Exception:
        logger.exception(f"WebSocket {connection_id} failed")
    finally:
        await handle_player_disconnect(ctx, **handler_deps)


# Serve the built client if present
static_path = config.STATIC_DIR
if os.path.isdir(static_path):
    @app.get("/")
    async def serve_index():
        return FileResponse(os.path.join(static_path, "index.html"))

    # Mount static files for everything else (JS, CSS, SVG, etc.)
    app.mount("/", StaticFiles(directory=static_path, html=True), name="static")


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting card game server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
