"""Application settings loaded from environment variables."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

PENDING_REQUEST_TTL_DEFAULT = 600
CLOCK_SKEW_DEFAULT = 60
TOKEN_ENDPOINT_TIMEOUT_DEFAULT = 30.0
JWK_SET_TTL_DEFAULT = 300
JWK_NEGATIVE_TTL_DEFAULT = 30
FETCH_TIMEOUT_DEFAULT = 5.0
DB_POOL_SIZE_DEFAULT = 5
DB_MAX_OVERFLOW_DEFAULT = 10
DB_PORT_DEFAULT = 5432


class DatabaseSettings(BaseSettings):
    """Connection settings for the authorized client table."""

    model_config = SettingsConfigDict(env_prefix="OAUTH_DB_")

    url: str = ""
    host: str = "localhost"
    port: int = DB_PORT_DEFAULT
    user: str = "oauth"
    password: str = "oauth"
    database: str = "oauth"
    pool_size: int = DB_POOL_SIZE_DEFAULT
    max_overflow: int = DB_MAX_OVERFLOW_DEFAULT

    @property
    def async_url(self) -> str:
        """Explicit URL if set, otherwise an async PostgreSQL URL."""
        if self.url:
            return self.url
        return (
            f"postgresql+asyncpg://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


class ClientSettings(BaseSettings):
    """OAuth client (relying party) settings."""

    model_config = SettingsConfigDict(env_prefix="OAUTH_CLIENT_")

    registrations_file: str = ""
    pending_request_ttl: int = PENDING_REQUEST_TTL_DEFAULT
    clock_skew: int = CLOCK_SKEW_DEFAULT
    token_endpoint_timeout: float = TOKEN_ENDPOINT_TIMEOUT_DEFAULT
    store: Literal["memory", "database"] = "memory"
    token_encryption_key: str = ""


class ResourceServerSettings(BaseSettings):
    """Bearer token validation settings."""

    model_config = SettingsConfigDict(env_prefix="OAUTH_RS_")

    mode: Literal["none", "jwt", "opaque"] = "none"

    jwk_set_uri: str = ""
    issuer: str = ""
    audience: str = ""
    algorithms: str = "RS256"
    jwk_set_ttl: int = JWK_SET_TTL_DEFAULT
    jwk_negative_ttl: int = JWK_NEGATIVE_TTL_DEFAULT
    jwk_refresh_interval: int = 0
    clock_skew: int = CLOCK_SKEW_DEFAULT
    principal_claim_name: str = "sub"

    introspection_uri: str = ""
    client_id: str = ""
    client_secret: str = ""

    authority_prefix: str = "SCOPE_"
    authorities_claim_name: str = ""
    fetch_timeout: float = FETCH_TIMEOUT_DEFAULT

    def get_algorithm_list(self) -> list[str]:
        """Parse comma-separated JWS algorithms."""
        return [a.strip() for a in self.algorithms.split(",") if a.strip()]
