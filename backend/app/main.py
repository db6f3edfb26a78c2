"""MovieSquad Realtime Backend Application.

This is the main entry point for the MovieSquad realtime service: the
live chat and notification layer of the MovieSquad movie/TV social
network.

Modules:
    - chat: WebSocket endpoint, rooms, message relay, conversation history
    - notifications: Notification fan-out service and recipient REST API
    - social: Friend request / accept actions
    - auth: Bearer credential (JWT) verification
    - store: Document store adapters (in-memory, DuckDB)
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.chat.conversations_router import router as conversations_router
from app.chat.manager import manager
from app.chat.router import router as chat_router
from app.config import get_config
from app.dependencies import get_store
from app.notifications.router import router as notifications_router
from app.social.router import router as social_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
# httpx/httpcore log every connection; multipart logs every form field.
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
    # `logging.level: "debug"` in moviesquad.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    store = get_store()
    logger.info(
        f"Realtime server ready on http://{config.server.host}:{config.server.port} "
        f"(store={type(store).__name__})"
    )

    yield  # Application runs here

    # Shutdown
    manager.clear()
    await store.close()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="MovieSquad Realtime API",
    description="Live chat and notification service for MovieSquad",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register all routers
app.include_router(chat_router)
app.include_router(conversations_router)
app.include_router(notifications_router)
app.include_router(social_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
