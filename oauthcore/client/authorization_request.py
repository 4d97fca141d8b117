"""Authorization request creation, redirect URIs and callback parsing."""

import hashlib
import secrets
from base64 import urlsafe_b64encode
from datetime import datetime
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from oauthcore.client.types import (
    AuthorizationRequest,
    CallbackParams,
    ClientRegistration,
)

STATE_BYTES = 32
NONCE_BYTES = 32
CODE_VERIFIER_BYTES = 48
DEFAULT_PORTS = {"http": 80, "https": 443}


def generate_state() -> str:
    """Random state value (256 bits)."""
    return secrets.token_urlsafe(STATE_BYTES)


def generate_nonce() -> str:
    return secrets.token_urlsafe(NONCE_BYTES)


def generate_code_verifier() -> str:
    """PKCE code verifier, 64 url-safe characters."""
    return secrets.token_urlsafe(CODE_VERIFIER_BYTES)


def code_challenge(code_verifier: str) -> str:
    """S256 PKCE challenge: BASE64URL(SHA256(verifier))."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def expand_redirect_uri(
    template: str,
    registration_id: str,
    base_url: str,
    action: str = "login",
) -> str:
    """Expand ``{baseUrl}``-style placeholders in a redirect URI template."""
    parts = urlsplit(base_url)
    port = parts.port
    if port is None or DEFAULT_PORTS.get(parts.scheme) == port:
        base_port = ""
    else:
        base_port = f":{port}"
    values = {
        "baseUrl": base_url.rstrip("/"),
        "baseScheme": parts.scheme,
        "baseHost": parts.hostname or "",
        "basePort": base_port,
        "registrationId": registration_id,
        "action": action,
    }
    expanded = template
    for name, value in values.items():
        expanded = expanded.replace("{" + name + "}", value)
    return expanded


def new_authorization_request(
    registration: ClientRegistration,
    *,
    principal_name: str,
    redirect_uri: str,
    created_at: datetime,
    scopes: frozenset[str] | None = None,
) -> AuthorizationRequest:
    """Create a fresh request with random state, nonce and PKCE verifier."""
    requested = registration.scopes if scopes is None else scopes
    nonce = generate_nonce() if "openid" in requested else None
    return AuthorizationRequest(
        state=generate_state(),
        registration_id=registration.registration_id,
        principal_name=principal_name,
        redirect_uri=redirect_uri,
        scopes=requested,
        nonce=nonce,
        code_verifier=generate_code_verifier(),
        created_at=created_at,
    )


def build_authorization_uri(
    registration: ClientRegistration, request: AuthorizationRequest
) -> str:
    """Build the ``GET <authorizationUri>?response_type=code...`` URL."""
    params = {
        "response_type": "code",
        "client_id": registration.client_id,
        "redirect_uri": request.redirect_uri,
    }
    if request.scopes:
        params["scope"] = " ".join(sorted(request.scopes))
    params["state"] = request.state
    if request.nonce:
        params["nonce"] = request.nonce
    if request.code_verifier:
        params["code_challenge"] = code_challenge(request.code_verifier)
        params["code_challenge_method"] = "S256"

    parts = urlsplit(registration.authorization_uri)
    query = urlencode(params)
    if parts.query:
        query = f"{parts.query}&{query}"
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))


def _first(values: dict[str, list[str]], name: str) -> str | None:
    found = values.get(name)
    return found[0] if found else None


def parse_callback(uri: str) -> CallbackParams:
    """Split a callback URI into its redirect URI and OAuth parameters."""
    parts = urlsplit(uri)
    query = parse_qs(parts.query, keep_blank_values=True)
    return CallbackParams(
        redirect_uri=urlunsplit((parts.scheme, parts.netloc, parts.path, "", "")),
        state=_first(query, "state"),
        code=_first(query, "code"),
        error=_first(query, "error"),
        error_description=_first(query, "error_description"),
    )
