"""
Role resolution over the claim set of an authenticated principal.

Roles can live either in a direct claim (``role``, ``user_role``,
``app_role``) or inside a metadata object (``app_metadata`` /
``user_metadata``) the identity provider attaches to the token. Direct
claims win; metadata is only consulted when no direct claim carries a role.
"""
import json
from collections.abc import Mapping
from typing import Any

ROLE_OWNER = "propietario"
ROLE_TENANT = "inquilino"
ROLE_ADMIN = "admin"

DIRECT_ROLE_CLAIMS = ("role", "user_role", "app_role")
METADATA_CLAIMS = ("app_metadata", "user_metadata")

# Session-level database roles set by the identity provider on every token;
# they say nothing about what the user may do in this application.
_GENERIC_ROLE_VALUES = frozenset({"authenticated", "anon"})


def resolve_role(claims: Mapping[str, Any]) -> str | None:
    """Return the caller's role, trimmed and lowercased, or None."""
    for key in DIRECT_ROLE_CLAIMS:
        role = _normalize(claims.get(key))
        if role and role not in _GENERIC_ROLE_VALUES:
            return role

    for key in METADATA_CLAIMS:
        role = _role_from_metadata(claims.get(key))
        if role:
            return role

    return None


def is_in_any_role(claims: Mapping[str, Any], *allowed_roles: str) -> bool:
    role = resolve_role(claims)
    if not role:
        return False
    return any(role == allowed.strip().lower() for allowed in allowed_roles)


def _normalize(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip().lower()
    return value or None


def _role_from_metadata(raw: Any) -> str | None:
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return None

    if not isinstance(raw, Mapping):
        return None
    return _normalize(raw.get("role"))
