"""FastAPI dependencies for the client flow and bearer authentication."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from oauthcore.client.orchestrator import AuthorizationOrchestrator
from oauthcore.core.errors import AuthenticationFailure
from oauthcore.core.services import OAuthServices
from oauthcore.resource.types import Principal


def get_services(request: Request) -> OAuthServices:
    return request.app.state.services


Services = Annotated[OAuthServices, Depends(get_services)]


def get_orchestrator(services: Services) -> AuthorizationOrchestrator:
    """The client-side orchestrator, or 503 when no registrations exist."""
    if services.orchestrator is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return services.orchestrator


def current_principal_name() -> str:
    """Name of the logged-in user driving the authorization flow.

    Session handling belongs to the host application, which overrides this
    dependency via ``app.dependency_overrides``.
    """
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


async def require_principal(request: Request, services: Services) -> Principal:
    """Authenticate the ``Authorization: Bearer`` header."""
    if services.authenticator is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    try:
        return await services.authenticator.authenticate(
            request.headers.get("Authorization")
        )
    except AuthenticationFailure as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail={"error": exc.error, "error_description": exc.description},
            headers={"WWW-Authenticate": exc.www_authenticate},
        ) from exc
