"""Authorization redirect and callback endpoints for the client side."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from starlette.responses import JSONResponse

from oauthcore.api.deps import current_principal_name, get_orchestrator
from oauthcore.api.schemas import AuthorizedClientSummary
from oauthcore.client.orchestrator import AuthorizationOrchestrator
from oauthcore.client.types import AuthorizationRedirect, AuthorizeContext
from oauthcore.core.errors import (
    AuthorizationRequestInvalid,
    AuthorizationResponseError,
    ConfigurationError,
    ReauthorizationRequired,
    TokenExchangeError,
)

router = APIRouter()

HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_NOT_FOUND = 404
HTTP_BAD_GATEWAY = 502

Orchestrator = Annotated[AuthorizationOrchestrator, Depends(get_orchestrator)]
PrincipalName = Annotated[str, Depends(current_principal_name)]


def _exchange_error(exc: TokenExchangeError) -> JSONResponse:
    return JSONResponse(
        {"error": exc.code, "error_description": exc.description or ""},
        status_code=HTTP_BAD_GATEWAY,
    )


@router.get("/oauth2/authorization/{registration_id}", response_model=None)
async def start_authorization(
    registration_id: str,
    request: Request,
    orchestrator: Orchestrator,
    principal_name: PrincipalName,
) -> RedirectResponse | JSONResponse:
    """GET /oauth2/authorization/{id} -- redirect to the provider or reuse."""
    context = AuthorizeContext(base_url=str(request.base_url).rstrip("/"))
    try:
        result = await orchestrator.authorize(principal_name, registration_id, context)
    except ConfigurationError as exc:
        return JSONResponse(
            {"error": "invalid_registration", "error_description": str(exc)},
            status_code=HTTP_NOT_FOUND,
        )
    except ReauthorizationRequired as exc:
        return JSONResponse(
            {"error": "reauthorization_required", "error_description": str(exc)},
            status_code=HTTP_UNAUTHORIZED,
        )
    except TokenExchangeError as exc:
        return _exchange_error(exc)

    if isinstance(result, AuthorizationRedirect):
        return RedirectResponse(url=result.url, status_code=302)
    return JSONResponse(
        AuthorizedClientSummary.from_client(result).model_dump(mode="json")
    )


@router.get("/login/oauth2/code/{registration_id}", response_model=None)
async def authorization_callback(
    registration_id: str,
    request: Request,
    orchestrator: Orchestrator,
    principal_name: PrincipalName,
) -> JSONResponse:
    """GET /login/oauth2/code/{id} -- redeem the code from the provider."""
    try:
        client = await orchestrator.complete_authorization(
            principal_name, str(request.url)
        )
    except AuthorizationRequestInvalid as exc:
        return JSONResponse(
            {"error": "invalid_request", "error_description": exc.reason.value},
            status_code=HTTP_BAD_REQUEST,
        )
    except AuthorizationResponseError as exc:
        return JSONResponse(
            {"error": exc.error, "error_description": exc.description or ""},
            status_code=HTTP_BAD_REQUEST,
        )
    except TokenExchangeError as exc:
        return _exchange_error(exc)

    return JSONResponse(
        AuthorizedClientSummary.from_client(client).model_dump(mode="json")
    )
