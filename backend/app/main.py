"""Direct Messaging Backend Application.

This is the main entry point for the direct messaging backend service.
Users exchange text and image messages through the REST API and receive
presence, typing, delivery, and read-receipt notifications over a
WebSocket session.

Modules:
    - messages: Conversation history, sending, chat list, contacts
    - realtime: WebSocket sessions, presence, typing, relays
    - images: Local image storage for image messages
    - users: User directory (read model of the account system)
    - auth: Session token verification
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_config
from app.images.router import router as images_router
from app.images.service import ImageStorageService
from app.messages.router import router as messages_router
from app.messages.service import MessageService
from app.realtime.context import RealtimeContext
from app.realtime.router import router as realtime_router
from app.users.service import UserService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in (
    "httpx",
    "httpcore",
    "multipart",
    "python_multipart",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in chat.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    storage = config.storage
    store = MessageService.get_instance(db_path=storage.messages_db)
    UserService.get_instance(db_path=storage.users_db)
    ImageStorageService.get_instance(
        upload_dir=storage.upload_dir,
        db_path=storage.images_db,
        max_size_bytes=storage.max_image_bytes,
    )

    app.state.realtime = RealtimeContext(store, config.realtime)
    logger.info(
        f"Realtime ready: max {config.realtime.max_sessions_per_user} sessions/user, "
        f"typing timeout {config.realtime.typing_timeout_seconds}s"
    )

    yield  # Application runs here

    # Shutdown
    await app.state.realtime.shutdown()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Direct Messaging API",
    description="Backend service for one-to-one chat with realtime presence and typing",
    version="0.1.0",
    lifespan=lifespan,
)

# Browsers send the session cookie cross-origin only with credentials allowed
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register all routers
app.include_router(messages_router)
app.include_router(realtime_router)
app.include_router(images_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    config = get_config()
    uvicorn.run("app.main:app", host=config.server.host, port=config.server.port)
