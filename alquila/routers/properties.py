import dataclasses
import logging
import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Response

from alquila.core.deps import (
    Principal,
    ensure_can_edit,
    get_repository,
    require_any_role,
)
from alquila.core.errors import ApiError, ErrorKind
from alquila.core.roles import ROLE_ADMIN, ROLE_OWNER
from alquila.schemas.property import (
    MODERATION_STATUSES,
    SORT_NEWEST,
    SORT_OPTIONS,
    STATUS_PUBLISHED,
    ModerationQueueItemResponse,
    PropertyModerationRequest,
    PropertyPatchRequest,
    PropertyResponse,
    PropertyUpsertRequest,
    PublicPropertySearchResponse,
    StatusHistoryResponse,
)
from alquila.schemas.property_image import PublicPropertyDetailResponse
from alquila.services import property_validator
from alquila.services.properties_repository import PropertiesRepository, SearchFilters

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/properties", tags=["properties"])

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 50
RELATED_LISTINGS_LIMIT = 4

_owner_or_admin = require_any_role(ROLE_OWNER, ROLE_ADMIN)
_admin_only = require_any_role(ROLE_ADMIN)


# ─── Public ───────────────────────────────────────────────────────────────────

@router.get("/public", response_model=PublicPropertySearchResponse)
async def search_public_properties(
    city: str | None = Query(None),
    min_price: Decimal | None = Query(None, alias="minPrice"),
    max_price: Decimal | None = Query(None, alias="maxPrice"),
    bedrooms: int | None = Query(None),
    is_furnished: bool | None = Query(None, alias="isFurnished"),
    sort: str = Query(SORT_NEWEST),
    page: int = Query(1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize"),
    repository: PropertiesRepository = Depends(get_repository),
):
    errors: dict[str, list[str]] = {}
    if min_price is not None and max_price is not None and min_price > max_price:
        errors["minPrice"] = ["minPrice cannot be greater than maxPrice."]
    if page < 1:
        errors["page"] = ["page must be greater than or equal to 1."]
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        errors["pageSize"] = [f"pageSize must be between 1 and {MAX_PAGE_SIZE}."]
    sort = sort.strip().lower()
    if sort not in SORT_OPTIONS:
        errors["sort"] = [f"sort must be one of: {', '.join(SORT_OPTIONS)}."]
    if errors:
        raise ApiError.validation(errors)

    filters = SearchFilters(
        city=city,
        min_price=min_price,
        max_price=max_price,
        bedrooms=bedrooms,
        is_furnished=is_furnished,
    )
    return await repository.search_published(filters, sort, page, page_size)


@router.get("/public/{property_id}", response_model=PublicPropertyDetailResponse)
async def get_public_property(
    property_id: uuid.UUID,
    repository: PropertiesRepository = Depends(get_repository),
):
    prop = await repository.get_by_id(property_id)
    if prop is None or prop.status != STATUS_PUBLISHED:
        raise ApiError(ErrorKind.NOT_FOUND, "Property not found")

    images = await repository.list_images(property_id)

    # One extra row in case the property itself is among the newest in its city
    same_city = await repository.search_published(
        SearchFilters(city=prop.city), SORT_NEWEST, 1, RELATED_LISTINGS_LIMIT + 1
    )
    related = [item for item in same_city.items if item.id != prop.id][:RELATED_LISTINGS_LIMIT]

    return PublicPropertyDetailResponse.model_validate({
        **dataclasses.asdict(prop),
        "images": [dataclasses.asdict(image) for image in images],
        "related_by_city": [dataclasses.asdict(item) for item in related],
    })


# ─── Create / update ──────────────────────────────────────────────────────────

@router.post("", response_model=PropertyResponse, status_code=201)
async def create_property(
    payload: PropertyUpsertRequest,
    response: Response,
    principal: Principal = Depends(_owner_or_admin),
    repository: PropertiesRepository = Depends(get_repository),
):
    errors = property_validator.validate_for_create(payload)
    if errors:
        raise ApiError.validation(errors)

    auth_user_id = principal.auth_user_id
    if auth_user_id is None:
        raise ApiError(ErrorKind.UNAUTHORIZED, "Token has no usable subject")

    owner_user_id = await repository.find_owner_user_id(auth_user_id)
    if owner_user_id is None:
        raise ApiError(
            ErrorKind.FORBIDDEN,
            "Authenticated user does not have an internal profile in users table.",
            title="Missing user profile",
        )

    created = await repository.create(owner_user_id, property_validator.normalize_for_create(payload))
    logger.info("Property %s created by user %s", created.id, owner_user_id)

    response.headers["Location"] = f"/properties/{created.id}"
    return created


@router.patch("/{property_id}", response_model=PropertyResponse)
async def patch_property(
    property_id: uuid.UUID,
    payload: PropertyPatchRequest,
    principal: Principal = Depends(_owner_or_admin),
    repository: PropertiesRepository = Depends(get_repository),
):
    errors = property_validator.validate_for_patch(payload)
    if errors:
        raise ApiError.validation(errors)

    patch = property_validator.normalize_for_patch(payload)
    if not patch.has_any_field:
        raise ApiError.field("request", "At least one field is required for patch.")

    prop = await repository.get_by_id(property_id)
    if prop is None:
        raise ApiError(ErrorKind.NOT_FOUND, "Property not found")

    await ensure_can_edit(principal, prop, repository)

    updated = await repository.update(property_id, patch)
    if updated is None:
        raise ApiError(ErrorKind.NOT_FOUND, "Property not found")
    return updated


# ─── Moderation (admin) ───────────────────────────────────────────────────────

@router.get("/moderation/pending", response_model=list[ModerationQueueItemResponse])
async def list_pending_moderation(
    principal: Principal = Depends(_admin_only),
    repository: PropertiesRepository = Depends(get_repository),
):
    return await repository.list_pending_moderation()


@router.patch("/{property_id}/moderation", response_model=PropertyResponse)
async def moderate_property(
    property_id: uuid.UUID,
    payload: PropertyModerationRequest,
    principal: Principal = Depends(_admin_only),
    repository: PropertiesRepository = Depends(get_repository),
):
    status = payload.status.strip().lower()
    if status not in MODERATION_STATUSES:
        raise ApiError.field("status", f"status must be one of: {', '.join(MODERATION_STATUSES)}.")

    changed_by_user_id = None
    if principal.auth_user_id is not None:
        changed_by_user_id = await repository.find_owner_user_id(principal.auth_user_id)

    reason = (payload.reason or "").strip() or None

    updated = await repository.update_status(
        property_id,
        status,
        changed_by_user_id=changed_by_user_id,
        changed_by_role=ROLE_ADMIN,
        reason=reason,
    )
    if updated is None:
        raise ApiError(ErrorKind.NOT_FOUND, "Property not found")
    return updated


@router.get("/{property_id}/status-history", response_model=list[StatusHistoryResponse])
async def get_status_history(
    property_id: uuid.UUID,
    principal: Principal = Depends(_admin_only),
    repository: PropertiesRepository = Depends(get_repository),
):
    if await repository.get_by_id(property_id) is None:
        raise ApiError(ErrorKind.NOT_FOUND, "Property not found")
    return await repository.get_status_history(property_id)
