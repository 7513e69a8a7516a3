"""
WatchParty - Main Application Module

Two-seat shared video rooms built with FastAPI and plain WebSockets.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from .config import setup_logging, APP_NAME, VERSION, CORS_ALLOWED_ORIGINS
from .services.storage import MemStorage, Storage
from .services.room_registry import RoomRegistry
from .handlers.websocket_events import WebSocketEventHandler
from .api.rooms_api import router as rooms_router

# Initialize logging
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 {APP_NAME} startup completed")

    yield

    logger.info(f"🛑 {APP_NAME} shutting down")
    closed = await app.state.registry.close_all()
    if closed > 0:
        logger.info(f"🗑️ Closed {closed} live connections")


def create_app(storage: Optional[Storage] = None, idle_timeout: Optional[float] = None) -> FastAPI:
    """Build the application with its own storage, registry and handler."""
    app = FastAPI(
        title=APP_NAME,
        description="Synchronized watch rooms",
        version=VERSION,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.storage = storage if storage is not None else MemStorage()
    app.state.registry = RoomRegistry(app.state.storage)
    app.state.ws_handler = WebSocketEventHandler(
        app.state.storage, app.state.registry, idle_timeout=idle_timeout
    )

    app.include_router(rooms_router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await app.state.ws_handler.serve(websocket)

    @app.get("/api/stats")
    async def get_stats():
        """Get server statistics."""
        stats = app.state.registry.get_stats()
        logger.debug(f"📊 Server stats requested: {stats['total_rooms']} rooms, "
                     f"{stats['total_connections']} connections")
        return stats

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "app": APP_NAME,
            "version": VERSION
        }

    logger.info(f"🎬 {APP_NAME} v{VERSION} initialized")
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    from .config import HOST, PORT, DEBUG

    logger.info(f"🎬 Starting {APP_NAME} server...")
    logger.info(f"🌐 Server will be available at: http://{HOST}:{PORT}")

    uvicorn.run(
        "watchparty.main:app",
        host=HOST,
        port=PORT,
        reload=DEBUG,
        log_level="info" if not DEBUG else "debug"
    )
