import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

STATUS_PENDING = "pendiente"
STATUS_PUBLISHED = "publicado"
STATUS_REJECTED = "rechazado"
PROPERTY_STATUSES = (STATUS_PENDING, STATUS_PUBLISHED, STATUS_REJECTED)
MODERATION_STATUSES = (STATUS_PUBLISHED, STATUS_REJECTED)

CONTRACT_TYPES = ("long_term", "temporary", "monthly")

SORT_NEWEST = "newest"
SORT_PRICE_ASC = "price_asc"
SORT_PRICE_DESC = "price_desc"
SORT_OPTIONS = (SORT_NEWEST, SORT_PRICE_ASC, SORT_PRICE_DESC)


class CamelModel(BaseModel):
    """JSON bodies use camelCase on the wire; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ─── Requests ─────────────────────────────────────────────────────────────────

class PropertyUpsertRequest(CamelModel):
    title: str
    description: str | None = None
    city: str
    neighborhood: str | None = None
    address: str | None = None
    monthly_price: Decimal
    deposit_amount: Decimal
    bedrooms: int
    bathrooms: int
    area_m2: Decimal
    is_furnished: bool = False
    available_from: date
    contract_type: str  # long_term | temporary | monthly
    status: str = STATUS_PENDING  # pendiente | publicado | rechazado


class PropertyPatchRequest(CamelModel):
    title: str | None = None
    description: str | None = None
    city: str | None = None
    neighborhood: str | None = None
    address: str | None = None
    monthly_price: Decimal | None = None
    deposit_amount: Decimal | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    area_m2: Decimal | None = None
    is_furnished: bool | None = None
    available_from: date | None = None
    contract_type: str | None = None
    status: str | None = None


class PropertyModerationRequest(CamelModel):
    status: str
    reason: str | None = None


# ─── Responses ────────────────────────────────────────────────────────────────

class PropertyResponse(CamelModel):
    id: uuid.UUID
    owner_user_id: uuid.UUID
    title: str
    description: str | None
    city: str
    neighborhood: str | None
    address: str | None
    monthly_price: Decimal
    deposit_amount: Decimal
    bedrooms: int
    bathrooms: int
    area_m2: Decimal
    is_furnished: bool
    available_from: date
    contract_type: str
    status: str
    created_at: datetime
    updated_at: datetime


class ModerationQueueItemResponse(CamelModel):
    id: uuid.UUID
    owner_user_id: uuid.UUID
    title: str
    city: str
    status: str
    updated_at: datetime


class StatusHistoryResponse(CamelModel):
    id: uuid.UUID
    property_id: uuid.UUID
    previous_status: str
    new_status: str
    changed_by_user_id: uuid.UUID | None
    changed_by_role: str
    reason: str | None
    changed_at: datetime


class PublicPropertyListItemResponse(CamelModel):
    id: uuid.UUID
    title: str
    description: str | None
    city: str
    neighborhood: str | None
    address: str | None
    monthly_price: Decimal
    bedrooms: int
    bathrooms: int
    cover_image_url: str | None


class PublicPropertySearchResponse(CamelModel):
    items: list[PublicPropertyListItemResponse]
    page: int
    page_size: int
    total_items: int
    total_pages: int
