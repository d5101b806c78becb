"""Field-level validation and normalisation of property payloads."""
from decimal import Decimal

from alquila.schemas.property import (
    CONTRACT_TYPES,
    PROPERTY_STATUSES,
    PropertyPatchRequest,
    PropertyUpsertRequest,
)
from alquila.services.properties_repository import NewProperty, PropertyPatch

MAX_TITLE_LENGTH = 140
MAX_DESCRIPTION_LENGTH = 4000
MAX_CITY_LENGTH = 120
MAX_NEIGHBORHOOD_LENGTH = 120
MAX_ADDRESS_LENGTH = 255

FieldErrors = dict[str, list[str]]


def validate_for_create(request: PropertyUpsertRequest) -> FieldErrors:
    errors: FieldErrors = {}

    _check_text(errors, "title", request.title, MAX_TITLE_LENGTH, required=True)
    _check_text(errors, "description", request.description, MAX_DESCRIPTION_LENGTH)
    _check_text(errors, "city", request.city, MAX_CITY_LENGTH, required=True)
    _check_text(errors, "neighborhood", request.neighborhood, MAX_NEIGHBORHOOD_LENGTH)
    _check_text(errors, "address", request.address, MAX_ADDRESS_LENGTH)
    _check_numbers(
        errors,
        monthly_price=request.monthly_price,
        deposit_amount=request.deposit_amount,
        bedrooms=request.bedrooms,
        bathrooms=request.bathrooms,
        area_m2=request.area_m2,
    )
    _check_choice(errors, "contractType", request.contract_type, CONTRACT_TYPES)
    _check_choice(errors, "status", request.status, PROPERTY_STATUSES)

    return errors


def validate_for_patch(request: PropertyPatchRequest) -> FieldErrors:
    """Check only the fields present in the patch."""
    errors: FieldErrors = {}

    if request.title is not None:
        _check_text(errors, "title", request.title, MAX_TITLE_LENGTH, required=True)
    if request.description is not None:
        _check_text(errors, "description", request.description, MAX_DESCRIPTION_LENGTH)
    if request.city is not None:
        _check_text(errors, "city", request.city, MAX_CITY_LENGTH, required=True)
    if request.neighborhood is not None:
        _check_text(errors, "neighborhood", request.neighborhood, MAX_NEIGHBORHOOD_LENGTH)
    if request.address is not None:
        _check_text(errors, "address", request.address, MAX_ADDRESS_LENGTH)
    _check_numbers(
        errors,
        monthly_price=request.monthly_price,
        deposit_amount=request.deposit_amount,
        bedrooms=request.bedrooms,
        bathrooms=request.bathrooms,
        area_m2=request.area_m2,
    )
    if request.contract_type is not None:
        _check_choice(errors, "contractType", request.contract_type, CONTRACT_TYPES)
    if request.status is not None:
        _check_choice(errors, "status", request.status, PROPERTY_STATUSES)

    return errors


# ── Normalisation ────────────────────────────────────────────────────────────

def normalize_for_create(request: PropertyUpsertRequest) -> NewProperty:
    return NewProperty(
        title=request.title.strip(),
        description=_optional_text(request.description),
        city=request.city.strip(),
        neighborhood=_optional_text(request.neighborhood),
        address=_optional_text(request.address),
        monthly_price=request.monthly_price,
        deposit_amount=request.deposit_amount,
        bedrooms=request.bedrooms,
        bathrooms=request.bathrooms,
        area_m2=request.area_m2,
        is_furnished=request.is_furnished,
        available_from=request.available_from,
        contract_type=request.contract_type.strip().lower(),
        status=request.status.strip().lower(),
    )


def normalize_for_patch(request: PropertyPatchRequest) -> PropertyPatch:
    return PropertyPatch(
        title=request.title.strip() if request.title is not None else None,
        description=_optional_text(request.description),
        city=request.city.strip() if request.city is not None else None,
        neighborhood=_optional_text(request.neighborhood),
        address=_optional_text(request.address),
        monthly_price=request.monthly_price,
        deposit_amount=request.deposit_amount,
        bedrooms=request.bedrooms,
        bathrooms=request.bathrooms,
        area_m2=request.area_m2,
        is_furnished=request.is_furnished,
        available_from=request.available_from,
        contract_type=request.contract_type.strip().lower() if request.contract_type is not None else None,
        status=request.status.strip().lower() if request.status is not None else None,
    )


# ── Rules ────────────────────────────────────────────────────────────────────

def _add(errors: FieldErrors, key: str, message: str) -> None:
    errors.setdefault(key, []).append(message)


def _check_text(
    errors: FieldErrors,
    key: str,
    value: str | None,
    max_length: int,
    required: bool = False,
) -> None:
    normalized = (value or "").strip()
    if required and not normalized:
        _add(errors, key, f"{key} is required.")
        return
    if len(normalized) > max_length:
        _add(errors, key, f"{key} cannot exceed {max_length} characters.")


def _check_numbers(
    errors: FieldErrors,
    *,
    monthly_price: Decimal | None,
    deposit_amount: Decimal | None,
    bedrooms: int | None,
    bathrooms: int | None,
    area_m2: Decimal | None,
) -> None:
    if monthly_price is not None and monthly_price <= 0:
        _add(errors, "monthlyPrice", "monthlyPrice must be greater than 0.")
    if deposit_amount is not None and deposit_amount < 0:
        _add(errors, "depositAmount", "depositAmount cannot be negative.")
    if bedrooms is not None and bedrooms < 0:
        _add(errors, "bedrooms", "bedrooms cannot be negative.")
    if bathrooms is not None and bathrooms < 0:
        _add(errors, "bathrooms", "bathrooms cannot be negative.")
    if area_m2 is not None and area_m2 <= 0:
        _add(errors, "areaM2", "areaM2 must be greater than 0.")


def _check_choice(errors: FieldErrors, key: str, value: str, allowed: tuple[str, ...]) -> None:
    if value.strip().lower() not in allowed:
        _add(errors, key, f"{key} must be one of: {', '.join(allowed)}.")


def _optional_text(raw: str | None) -> str | None:
    if raw is None:
        return None
    return raw.strip() or None
