"""Identity hand-off from the authentication collaborator.

Tokens are checked upstream (an edge proxy or auth service). By the time a
socket reaches the room its verified claims travel as headers or, in
development, as query parameters; the room trusts them as given.
"""

from __future__ import annotations

from typing import Mapping, Optional, Protocol

from fastapi.requests import HTTPConnection

from .sessions import Identity, normalize_user_id


class IdentityVerifier(Protocol):
    def verify(self, connection: HTTPConnection) -> Optional[Identity]:
        ...


def _identity(
    values: Mapping[str, str], user_key: str, name_key: str, image_key: str
) -> Optional[Identity]:
    user_id = values.get(user_key, "")
    username = values.get(name_key, "").strip()
    if not user_id.strip() or not username:
        return None
    return Identity(
        user_id=normalize_user_id(user_id),
        username=username,
        profile_image_url=values.get(image_key) or None,
    )


class HeaderIdentityVerifier:
    """Reads ``X-User-Id`` / ``X-Username`` / ``X-Profile-Image`` set by the proxy."""

    def verify(self, connection: HTTPConnection) -> Optional[Identity]:
        return _identity(connection.headers, "x-user-id", "x-username", "x-profile-image")


class QueryIdentityVerifier:
    """Reads ``userId`` / ``username`` / ``profileImage`` from the query string."""

    def verify(self, connection: HTTPConnection) -> Optional[Identity]:
        return _identity(connection.query_params, "userId", "username", "profileImage")


VERIFIERS = {
    "header": HeaderIdentityVerifier,
    "query": QueryIdentityVerifier,
}


def verifier_for(source: str) -> IdentityVerifier:
    try:
        return VERIFIERS[source]()
    except KeyError as exc:
        raise ValueError(
            f"Unknown identity source {source!r}. Choose one of {', '.join(VERIFIERS)}."
        ) from exc
