import uuid
from dataclasses import dataclass, field
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from alquila.core.config import Settings
from alquila.core.errors import ApiError, ErrorKind
from alquila.core.roles import ROLE_ADMIN, is_in_any_role, resolve_role
from alquila.core.security import auth_user_id_from_claims, decode_token
from alquila.services.image_storage import ImageStorage
from alquila.services.properties_repository import PropertiesRepository, PropertyRecord

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as described by the verified token claims."""

    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def role(self) -> str | None:
        return resolve_role(self.claims)

    @property
    def auth_user_id(self) -> uuid.UUID | None:
        return auth_user_id_from_claims(self.claims)

    @property
    def is_admin(self) -> bool:
        return is_in_any_role(self.claims, ROLE_ADMIN)

    def has_any_role(self, *roles: str) -> bool:
        return is_in_any_role(self.claims, *roles)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_repository(request: Request) -> PropertiesRepository:
    return request.app.state.properties_repository


def get_image_storage(request: Request) -> ImageStorage:
    return request.app.state.image_storage


async def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(get_settings),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise ApiError(ErrorKind.UNAUTHORIZED, "Missing bearer token")

    claims = decode_token(credentials.credentials, settings)
    if claims is None:
        raise ApiError(ErrorKind.UNAUTHORIZED, "Invalid or expired token")
    return Principal(claims=claims)


def require_any_role(*roles: str):
    """Dependency factory: authenticated caller holding one of ``roles``, else 403."""

    async def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if not principal.has_any_role(*roles):
            raise ApiError(ErrorKind.FORBIDDEN)
        return principal

    return dependency


# ─── Ownership ─────────────────────────────────────────────────────────────────

async def ensure_can_edit(
    principal: Principal,
    prop: PropertyRecord,
    repository: PropertiesRepository,
) -> None:
    """Admins may edit anything; everyone else only properties they own."""
    if principal.is_admin:
        return

    auth_user_id = principal.auth_user_id
    if auth_user_id is None:
        raise ApiError(ErrorKind.UNAUTHORIZED, "Token has no usable subject")

    owner_user_id = await repository.find_owner_user_id(auth_user_id)
    if owner_user_id is None or owner_user_id != prop.owner_user_id:
        raise ApiError(ErrorKind.FORBIDDEN)


async def ensure_property_write_access(
    property_id: uuid.UUID,
    principal: Principal,
    repository: PropertiesRepository,
) -> PropertyRecord:
    prop = await repository.get_by_id(property_id)
    if prop is None:
        raise ApiError(ErrorKind.NOT_FOUND, "Property not found")

    await ensure_can_edit(principal, prop, repository)
    return prop
