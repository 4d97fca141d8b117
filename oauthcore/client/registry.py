"""Catalog of client registrations, built once at startup."""

from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from types import MappingProxyType

import yaml
from pydantic import ValidationError

from oauthcore.client.types import ClientRegistration
from oauthcore.core.errors import ConfigurationError


class ClientRegistry:
    """Read-only lookup of registrations by ``registration_id``."""

    def __init__(self, registrations: Iterable[ClientRegistration]) -> None:
        by_id: dict[str, ClientRegistration] = {}
        for registration in registrations:
            if registration.registration_id in by_id:
                msg = f"duplicate registration id {registration.registration_id!r}"
                raise ConfigurationError(msg)
            by_id[registration.registration_id] = registration
        self._by_id: Mapping[str, ClientRegistration] = MappingProxyType(by_id)

    def get(self, registration_id: str) -> ClientRegistration | None:
        """Return the registration, or None if unknown."""
        return self._by_id.get(registration_id)

    def require(self, registration_id: str) -> ClientRegistration:
        """Return the registration or raise ConfigurationError."""
        registration = self.get(registration_id)
        if registration is None:
            msg = f"unknown registration id {registration_id!r}"
            raise ConfigurationError(msg)
        return registration

    def __contains__(self, registration_id: object) -> bool:
        return registration_id in self._by_id

    def __iter__(self) -> Iterator[ClientRegistration]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)


def parse_registrations(document: object) -> ClientRegistry:
    """Build a registry from a ``{"registrations": {id: {...}}}`` mapping."""
    if not isinstance(document, dict):
        raise ConfigurationError("registrations document must be a mapping")
    entries = document.get("registrations") or {}
    if not isinstance(entries, dict):
        raise ConfigurationError("'registrations' must map ids to settings")

    registrations = []
    for registration_id, raw in entries.items():
        if not isinstance(raw, dict):
            msg = f"registration {registration_id!r} must be a mapping"
            raise ConfigurationError(msg)
        data = {**raw, "registration_id": str(registration_id)}
        scopes = data.get("scopes")
        if isinstance(scopes, str):
            data["scopes"] = scopes.replace(",", " ").split()
        try:
            registrations.append(ClientRegistration.model_validate(data))
        except ValidationError as exc:
            msg = f"invalid registration {registration_id!r}: {exc}"
            raise ConfigurationError(msg) from exc
    return ClientRegistry(registrations)


def load_registrations(path: str | Path) -> ClientRegistry:
    """Load registrations from a YAML file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"cannot read registrations file {path}: {exc}"
        raise ConfigurationError(msg) from exc
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        msg = f"invalid YAML in {path}: {exc}"
        raise ConfigurationError(msg) from exc
    return parse_registrations(document or {})
