"""FastAPI application factory for oauthcore."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from oauthcore.api.routes_oauth2 import router as oauth2_router
from oauthcore.api.routes_principal import router as principal_router
from oauthcore.core.services import OAuthServices, build_services


def create_app(services: OAuthServices | None = None) -> FastAPI:
    """Build the application.

    Without ``services`` the lifespan builds them from environment settings
    and closes them on shutdown; injected services belong to the caller.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if services is not None:
            yield
            return
        built = await build_services()
        app.state.services = built
        try:
            yield
        finally:
            await built.aclose()

    app = FastAPI(
        title="oauthcore",
        version="0.1.0",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.include_router(oauth2_router)
    app.include_router(principal_router)

    return app
