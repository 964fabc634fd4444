from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from access import AccessPolicy
from backend import ChatBackend
from broadcast import BroadcastRouter
from constants import ALLOWED_DOMAIN_PATTERNS, ALLOWED_ORIGINS, LOG_FILE, LOG_LEVEL, PORT
from lifecycle import LifecycleController
from logging_config import get_logger, setup_logging
from routers.api import api_router
from routers.realtime import realtime_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Relay server starting on port {PORT}")
    logger.info(f"Allowed domains: {', '.join(app.state.access_policy.domain_patterns)}")
    logger.info(f"Default chat created with ID: {app.state.backend.default_room_id}")
    yield
    logger.info(f"Relay server stopping, {len(app.state.backend.sessions)} sessions still connected")


def create_app(backend: Optional[ChatBackend] = None, access_policy: Optional[AccessPolicy] = None) -> FastAPI:
    """Build the application with its own state stores."""
    app = FastAPI(title="Relay", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    backend = backend or ChatBackend()
    router = BroadcastRouter(backend)
    access_policy = access_policy or AccessPolicy(ALLOWED_DOMAIN_PATTERNS)

    app.state.backend = backend
    app.state.router = router
    app.state.access_policy = access_policy
    app.state.controller = LifecycleController(backend, router, access_policy)

    app.include_router(api_router)
    app.include_router(realtime_router)

    logger.info("FastAPI application initialized")
    return app


setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

app = create_app()
