"""
Crashline application entry point.
FastAPI app exposing the round engine over HTTP and WebSocket.
"""

import asyncio

import orjson as json
import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from crashline.config import AppConfig, settings
from crashline.core.clock import RoundClock
from crashline.core.engine import RoundEngine
from crashline.core.exceptions import CrashGameError
from crashline.core.logger import get_logger, init_logging
from crashline.core.websocket import ConnectionManager
from crashline.routers import api

logger = get_logger("main")


def create_app(config: AppConfig = None, clock: RoundClock = None) -> FastAPI:
    """
    Build the app with its own engine and connection manager.

    The engine is started on application startup and stopped on shutdown,
    so importing or constructing the app never starts timers.
    """
    config = config or settings
    init_logging(
        level=config.logging.level,
        log_to_file=config.logging.log_to_file,
        formatter=config.logging.formatter,
        log_file_path=config.logging.get_log_path(),
    )

    app = FastAPI(
        title=config.server.name,
        docs_url="/docs" if config.server.debug else None,
        redoc_url=None,
    )

    engine = RoundEngine(config.game, clock=clock)
    ws_manager = ConnectionManager()
    engine.subscribe(ws_manager.on_round_event)
    app.state.engine = engine
    app.state.ws_manager = ws_manager

    app.state.limiter = api.limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    app.include_router(api.router, prefix="/api")

    @app.on_event("startup")
    async def startup_event():
        ws_manager.bind_loop(asyncio.get_running_loop())
        engine.start()

    @app.on_event("shutdown")
    def shutdown_event():
        engine.stop()

    @app.exception_handler(CrashGameError)
    async def crash_game_error_handler(request: Request, exc: CrashGameError):
        return JSONResponse(status_code=400, content={"detail": str(exc), "code": exc.code})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if config.server.debug else None,
            },
        )

    @app.get("/", response_class=PlainTextResponse)
    async def index():
        return "Server is running!"

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        Round updates. Sends the current state on connect, then every engine
        event. Clients may identify with ?player_id= and send {"type": "ping"}.
        """
        player_id = websocket.query_params.get("player_id")
        await ws_manager.connect(websocket, player_id, state=engine.snapshot().to_dict())

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    continue
                if isinstance(message, dict) and message.get("type") == "ping":
                    await websocket.send_bytes(json.dumps({"type": "pong"}))
        except WebSocketDisconnect as e:
            logger.info("WebSocket closed", extra={"player_id": player_id, "code": e.code})
        except Exception as e:
            logger.error("WebSocket error", extra={"player_id": player_id, "error": str(e)})
        finally:
            ws_manager.disconnect(websocket, player_id)

    logger.info(f"Application '{config.server.name}' initialized")
    return app


app = create_app()


if __name__ == "__main__":
    logger.info(f"Starting server on {settings.server.host}:{settings.server.port}")
    uvicorn.run(
        "crashline.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.debug,
    )
