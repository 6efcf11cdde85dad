from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from routers.health import health_router
from routers.relay import relay_router
from routers.rooms import rooms_router
from backend import RoomRegistry
from broadcast import Broadcaster
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL, SEND_TIMEOUT_SECONDS
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(registry: Optional[RoomRegistry] = None, send_timeout: float = SEND_TIMEOUT_SECONDS) -> FastAPI:
    """Build the relay application around its own room registry.

    Each call gets a fresh registry unless one is passed in, so several apps
    (e.g. one per test) never share membership state.
    """
    app = FastAPI(title="Room Relay")

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.registry = registry if registry is not None else RoomRegistry()
    app.state.broadcaster = Broadcaster(app.state.registry, send_timeout=send_timeout)

    app.include_router(relay_router)
    app.include_router(rooms_router)
    app.include_router(health_router)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
