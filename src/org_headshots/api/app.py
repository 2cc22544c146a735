"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from org_headshots.api.auth import router as auth_router
from org_headshots.api.members import router as members_router
from org_headshots.api.photos import router as photos_router
from org_headshots.app_logging import configure_logging
from org_headshots.containers import AppContainer


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies.

    The container holds one session store, so the app serves a single
    signed-in member per process. Every caller acts as that member; run one
    process per user and bind it to localhost.
    """
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await app.state.container.session_store.start()
        except Exception:
            logger.exception("Initial session reconcile failed")
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(auth_router)
    app.include_router(members_router)
    app.include_router(photos_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
