import uuid
from datetime import date, datetime
from decimal import Decimal

from alquila.schemas.property import CamelModel, PublicPropertyListItemResponse


class PropertyImageResponse(CamelModel):
    id: uuid.UUID
    property_id: uuid.UUID
    public_url: str
    mime_type: str
    file_size_bytes: int
    display_order: int
    created_at: datetime


class ImageOrderItemRequest(CamelModel):
    image_id: uuid.UUID
    display_order: int


class ImageOrderPatchRequest(CamelModel):
    items: list[ImageOrderItemRequest] | None = None


class PublicPropertyDetailResponse(CamelModel):
    id: uuid.UUID
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
    images: list[PropertyImageResponse]
    related_by_city: list[PublicPropertyListItemResponse]
