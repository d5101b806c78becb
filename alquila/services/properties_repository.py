"""
Properties store contract.

The endpoint layer only talks to ``PropertiesRepository``; the SQLAlchemy
implementation lives in ``sql_properties_repository`` and tests plug in an
in-memory one. Records crossing the boundary are frozen dataclasses so no
ORM state leaks out of a store call.
"""
import abc
import uuid
from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any


# ── Records ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PropertyRecord:
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


@dataclass(frozen=True)
class PropertyImageRecord:
    id: uuid.UUID
    property_id: uuid.UUID
    storage_path: str
    public_url: str
    mime_type: str
    file_size_bytes: int
    display_order: int
    created_at: datetime


@dataclass(frozen=True)
class StatusHistoryRecord:
    id: uuid.UUID
    property_id: uuid.UUID
    previous_status: str
    new_status: str
    changed_by_user_id: uuid.UUID | None
    changed_by_role: str
    reason: str | None
    changed_at: datetime


@dataclass(frozen=True)
class ModerationQueueItem:
    id: uuid.UUID
    owner_user_id: uuid.UUID
    title: str
    city: str
    status: str
    updated_at: datetime


@dataclass(frozen=True)
class PublicListItem:
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


@dataclass(frozen=True)
class SearchPage:
    items: list[PublicListItem]
    page: int
    page_size: int
    total_items: int
    total_pages: int


# ── Inputs ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class NewProperty:
    """Normalized create payload: trimmed text, lowercased enums."""

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


@dataclass(frozen=True)
class PropertyPatch:
    """Normalized partial update. ``None`` means "leave unchanged"."""

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

    def changes(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    @property
    def has_any_field(self) -> bool:
        return bool(self.changes())


@dataclass(frozen=True)
class NewPropertyImage:
    storage_path: str
    public_url: str
    mime_type: str
    file_size_bytes: int
    display_order: int


@dataclass(frozen=True)
class ImageOrderItem:
    image_id: uuid.UUID
    display_order: int


@dataclass(frozen=True)
class SearchFilters:
    city: str | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    bedrooms: int | None = None
    is_furnished: bool | None = None


def total_pages(total_items: int, page_size: int) -> int:
    if total_items == 0:
        return 0
    return -(-total_items // page_size)


# ── Errors ───────────────────────────────────────────────────────────────────

class ImageOrderError(Exception):
    """A reorder request the store refused; nothing was written."""


class ForeignImageError(ImageOrderError):
    def __init__(self, image_id: uuid.UUID, property_id: uuid.UUID):
        super().__init__(f"Image '{image_id}' does not belong to property '{property_id}'.")
        self.image_id = image_id
        self.property_id = property_id


class DisplayOrderConflictError(ImageOrderError):
    def __init__(self, display_order: int, property_id: uuid.UUID):
        super().__init__(
            f"displayOrder {display_order} is already used by another image of property '{property_id}'."
        )
        self.display_order = display_order
        self.property_id = property_id


# ── Contract ─────────────────────────────────────────────────────────────────

class PropertiesRepository(abc.ABC):
    @abc.abstractmethod
    async def find_owner_user_id(self, auth_user_id: uuid.UUID) -> uuid.UUID | None:
        """Map an identity-provider user id to the internal user id."""

    @abc.abstractmethod
    async def get_by_id(self, property_id: uuid.UUID) -> PropertyRecord | None: ...

    @abc.abstractmethod
    async def create(self, owner_user_id: uuid.UUID, data: NewProperty) -> PropertyRecord: ...

    @abc.abstractmethod
    async def update(self, property_id: uuid.UUID, patch: PropertyPatch) -> PropertyRecord | None:
        """Apply the present fields and bump ``updated_at``; an empty patch is a plain read."""

    @abc.abstractmethod
    async def list_images(self, property_id: uuid.UUID) -> list[PropertyImageRecord]:
        """Images ordered by (display_order, created_at)."""

    @abc.abstractmethod
    async def count_images(self, property_id: uuid.UUID) -> int: ...

    @abc.abstractmethod
    async def add_images(
        self, property_id: uuid.UUID, images: list[NewPropertyImage]
    ) -> list[PropertyImageRecord]:
        """Insert all images or none."""

    @abc.abstractmethod
    async def reorder_images(
        self, property_id: uuid.UUID, items: list[ImageOrderItem]
    ) -> list[PropertyImageRecord]:
        """Apply every display order or none; raises ``ImageOrderError``."""

    @abc.abstractmethod
    async def list_pending_moderation(self) -> list[ModerationQueueItem]: ...

    @abc.abstractmethod
    async def search_published(
        self, filters: SearchFilters, sort: str, page: int, page_size: int
    ) -> SearchPage: ...

    @abc.abstractmethod
    async def update_status(
        self,
        property_id: uuid.UUID,
        new_status: str,
        changed_by_user_id: uuid.UUID | None,
        changed_by_role: str,
        reason: str | None,
    ) -> PropertyRecord | None:
        """Change status and append history; same status is a no-op."""

    @abc.abstractmethod
    async def get_status_history(self, property_id: uuid.UUID) -> list[StatusHistoryRecord]:
        """History entries, newest first."""
