"""
SQLAlchemy implementation of the properties store.

Every public method opens its own session. Read and list queries are retried
on transient connectivity errors; multi-statement writes run inside a single
transaction and are never retried, since a partially applied sequence is not
safe to replay.
"""
import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TypeVar

from sqlalchemy import func, select, update
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from alquila.models.property import Property, PropertyImage, PropertyStatusHistory
from alquila.models.user import User
from alquila.schemas.property import SORT_PRICE_ASC, SORT_PRICE_DESC, STATUS_PENDING, STATUS_PUBLISHED
from alquila.services.properties_repository import (
    DisplayOrderConflictError,
    ForeignImageError,
    ImageOrderItem,
    ModerationQueueItem,
    NewProperty,
    NewPropertyImage,
    PropertiesRepository,
    PropertyImageRecord,
    PropertyPatch,
    PropertyRecord,
    PublicListItem,
    SearchFilters,
    SearchPage,
    StatusHistoryRecord,
    total_pages,
)

logger = logging.getLogger(__name__)

MAX_TRANSIENT_RETRIES = 2

T = TypeVar("T")


# ─── Transient error handling ─────────────────────────────────────────────────

def is_transient_error(error: BaseException) -> bool:
    """Connection-class failures and timeouts; anything else is fatal."""
    if isinstance(error, (TimeoutError, ConnectionError, sa_exc.TimeoutError, sa_exc.DisconnectionError)):
        return True

    if isinstance(error, sa_exc.DBAPIError):
        if error.connection_invalidated:
            return True
        orig = error.orig
        if isinstance(orig, (TimeoutError, ConnectionError)):
            return True
        # SQLSTATE class 08 => connection exception
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if isinstance(sqlstate, str) and sqlstate.startswith("08"):
            return True

    return False


async def with_transient_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int = MAX_TRANSIENT_RETRIES,
    backoff_seconds: float = 0.25,
) -> T:
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= retries or not is_transient_error(exc):
                raise
            attempt += 1
            logger.warning(
                "Transient database error (attempt %d of %d), retrying: %s",
                attempt, retries, exc,
            )
            await asyncio.sleep(backoff_seconds * attempt)


# ─── Row mapping ──────────────────────────────────────────────────────────────

def _as_utc(value: datetime) -> datetime:
    # SQLite drops the offset on read; stored values are always UTC
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _to_property(row: Property) -> PropertyRecord:
    return PropertyRecord(
        id=row.id,
        owner_user_id=row.owner_user_id,
        title=row.title,
        description=row.description,
        city=row.city,
        neighborhood=row.neighborhood,
        address=row.address,
        monthly_price=row.monthly_price,
        deposit_amount=row.deposit_amount,
        bedrooms=row.bedrooms,
        bathrooms=row.bathrooms,
        area_m2=row.area_m2,
        is_furnished=row.is_furnished,
        available_from=row.available_from,
        contract_type=row.contract_type,
        status=row.status,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _to_image(row: PropertyImage) -> PropertyImageRecord:
    return PropertyImageRecord(
        id=row.id,
        property_id=row.property_id,
        storage_path=row.storage_path,
        public_url=row.public_url,
        mime_type=row.mime_type,
        file_size_bytes=row.file_size_bytes,
        display_order=row.display_order,
        created_at=_as_utc(row.created_at),
    )


def _to_history(row: PropertyStatusHistory) -> StatusHistoryRecord:
    return StatusHistoryRecord(
        id=row.id,
        property_id=row.property_id,
        previous_status=row.previous_status,
        new_status=row.new_status,
        changed_by_user_id=row.changed_by_user_id,
        changed_by_role=row.changed_by_role,
        reason=row.reason,
        changed_at=_as_utc(row.changed_at),
    )


def _cover_image_url():
    return (
        select(PropertyImage.public_url)
        .where(PropertyImage.property_id == Property.id)
        .order_by(PropertyImage.display_order.asc(), PropertyImage.created_at.asc())
        .limit(1)
        .correlate(Property)
        .scalar_subquery()
    )


class SqlPropertiesRepository(PropertiesRepository):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        retry_backoff_seconds: float = 0.25,
    ):
        self._session_factory = session_factory
        self._retry_backoff_seconds = retry_backoff_seconds

    async def _read(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def attempt() -> T:
            async with self._session_factory() as session:
                return await operation(session)

        return await with_transient_retry(attempt, backoff_seconds=self._retry_backoff_seconds)

    # ── Users ────────────────────────────────────────────────────────────────

    async def find_owner_user_id(self, auth_user_id: uuid.UUID) -> uuid.UUID | None:
        async def query(session: AsyncSession) -> uuid.UUID | None:
            result = await session.execute(
                select(User.id).where(User.auth_user_id == auth_user_id).limit(1)
            )
            return result.scalar_one_or_none()

        return await self._read(query)

    # ── Properties ───────────────────────────────────────────────────────────

    async def get_by_id(self, property_id: uuid.UUID) -> PropertyRecord | None:
        async def query(session: AsyncSession) -> PropertyRecord | None:
            prop = await session.get(Property, property_id)
            return _to_property(prop) if prop else None

        return await self._read(query)

    async def create(self, owner_user_id: uuid.UUID, data: NewProperty) -> PropertyRecord:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session, session.begin():
            prop = Property(
                owner_user_id=owner_user_id,
                title=data.title,
                description=data.description,
                city=data.city,
                neighborhood=data.neighborhood,
                address=data.address,
                monthly_price=data.monthly_price,
                deposit_amount=data.deposit_amount,
                bedrooms=data.bedrooms,
                bathrooms=data.bathrooms,
                area_m2=data.area_m2,
                is_furnished=data.is_furnished,
                available_from=data.available_from,
                contract_type=data.contract_type,
                status=data.status,
                created_at=now,
                updated_at=now,
            )
            session.add(prop)
            await session.flush()
            return _to_property(prop)

    async def update(self, property_id: uuid.UUID, patch: PropertyPatch) -> PropertyRecord | None:
        changes = patch.changes()
        if not changes:
            return await self.get_by_id(property_id)

        async with self._session_factory() as session, session.begin():
            prop = await session.get(Property, property_id)
            if prop is None:
                return None

            for field, value in changes.items():
                setattr(prop, field, value)
            prop.updated_at = datetime.now(timezone.utc)

            await session.flush()
            return _to_property(prop)

    # ── Images ───────────────────────────────────────────────────────────────

    async def list_images(self, property_id: uuid.UUID) -> list[PropertyImageRecord]:
        return await self._read(lambda session: self._list_images(session, property_id))

    @staticmethod
    async def _list_images(session: AsyncSession, property_id: uuid.UUID) -> list[PropertyImageRecord]:
        result = await session.execute(
            select(PropertyImage)
            .where(PropertyImage.property_id == property_id)
            .order_by(PropertyImage.display_order.asc(), PropertyImage.created_at.asc())
        )
        return [_to_image(row) for row in result.scalars().all()]

    async def count_images(self, property_id: uuid.UUID) -> int:
        async def query(session: AsyncSession) -> int:
            result = await session.execute(
                select(func.count())
                .select_from(PropertyImage)
                .where(PropertyImage.property_id == property_id)
            )
            return int(result.scalar_one())

        return await self._read(query)

    async def add_images(
        self, property_id: uuid.UUID, images: list[NewPropertyImage]
    ) -> list[PropertyImageRecord]:
        if not images:
            return []

        now = datetime.now(timezone.utc)
        async with self._session_factory() as session, session.begin():
            rows = [
                PropertyImage(
                    property_id=property_id,
                    storage_path=image.storage_path,
                    public_url=image.public_url,
                    mime_type=image.mime_type,
                    file_size_bytes=image.file_size_bytes,
                    display_order=image.display_order,
                    created_at=now,
                )
                for image in images
            ]
            session.add_all(rows)
            await session.flush()
            return [_to_image(row) for row in rows]

    async def reorder_images(
        self, property_id: uuid.UUID, items: list[ImageOrderItem]
    ) -> list[PropertyImageRecord]:
        if not items:
            return await self.list_images(property_id)

        async with self._session_factory() as session, session.begin():
            for item in items:
                result = await session.execute(
                    update(PropertyImage)
                    .where(
                        PropertyImage.id == item.image_id,
                        PropertyImage.property_id == property_id,
                    )
                    .values(display_order=item.display_order)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise ForeignImageError(item.image_id, property_id)

            duplicate = await session.execute(
                select(PropertyImage.display_order)
                .where(PropertyImage.property_id == property_id)
                .group_by(PropertyImage.display_order)
                .having(func.count() > 1)
                .limit(1)
            )
            conflict = duplicate.scalar_one_or_none()
            if conflict is not None:
                raise DisplayOrderConflictError(conflict, property_id)

            return await self._list_images(session, property_id)

    # ── Moderation ───────────────────────────────────────────────────────────

    async def list_pending_moderation(self) -> list[ModerationQueueItem]:
        async def query(session: AsyncSession) -> list[ModerationQueueItem]:
            result = await session.execute(
                select(
                    Property.id,
                    Property.owner_user_id,
                    Property.title,
                    Property.city,
                    Property.status,
                    Property.updated_at,
                )
                .where(Property.status == STATUS_PENDING)
                .order_by(Property.updated_at.desc())
            )
            return [
                ModerationQueueItem(
                    id=r.id,
                    owner_user_id=r.owner_user_id,
                    title=r.title,
                    city=r.city,
                    status=r.status,
                    updated_at=_as_utc(r.updated_at),
                )
                for r in result.all()
            ]

        return await self._read(query)

    async def update_status(
        self,
        property_id: uuid.UUID,
        new_status: str,
        changed_by_user_id: uuid.UUID | None,
        changed_by_role: str,
        reason: str | None,
    ) -> PropertyRecord | None:
        async with self._session_factory() as session, session.begin():
            prop = await session.get(Property, property_id, with_for_update=True)
            if prop is None:
                return None

            previous_status = prop.status
            if previous_status.lower() == new_status.lower():
                return _to_property(prop)

            now = datetime.now(timezone.utc)
            prop.status = new_status
            prop.updated_at = now
            session.add(PropertyStatusHistory(
                property_id=property_id,
                previous_status=previous_status,
                new_status=new_status,
                changed_by_user_id=changed_by_user_id,
                changed_by_role=changed_by_role,
                reason=reason,
                changed_at=now,
            ))
            await session.flush()

            logger.info(
                "Property %s status %s -> %s by %s",
                property_id, previous_status, new_status, changed_by_role,
            )
            return _to_property(prop)

    async def get_status_history(self, property_id: uuid.UUID) -> list[StatusHistoryRecord]:
        async def query(session: AsyncSession) -> list[StatusHistoryRecord]:
            result = await session.execute(
                select(PropertyStatusHistory)
                .where(PropertyStatusHistory.property_id == property_id)
                .order_by(PropertyStatusHistory.changed_at.desc())
            )
            return [_to_history(row) for row in result.scalars().all()]

        return await self._read(query)

    # ── Public search ────────────────────────────────────────────────────────

    async def search_published(
        self, filters: SearchFilters, sort: str, page: int, page_size: int
    ) -> SearchPage:
        conditions = [Property.status == STATUS_PUBLISHED]
        if filters.city and filters.city.strip():
            conditions.append(func.lower(Property.city) == filters.city.strip().lower())
        if filters.min_price is not None:
            conditions.append(Property.monthly_price >= filters.min_price)
        if filters.max_price is not None:
            conditions.append(Property.monthly_price <= filters.max_price)
        if filters.bedrooms is not None:
            conditions.append(Property.bedrooms == filters.bedrooms)
        if filters.is_furnished is not None:
            conditions.append(Property.is_furnished == filters.is_furnished)

        if sort == SORT_PRICE_ASC:
            order_by = (Property.monthly_price.asc(), Property.updated_at.desc())
        elif sort == SORT_PRICE_DESC:
            order_by = (Property.monthly_price.desc(), Property.updated_at.desc())
        else:
            order_by = (Property.updated_at.desc(),)

        async def query(session: AsyncSession) -> SearchPage:
            count = await session.execute(
                select(func.count()).select_from(Property).where(*conditions)
            )
            total_items = int(count.scalar_one())

            result = await session.execute(
                select(
                    Property.id,
                    Property.title,
                    Property.description,
                    Property.city,
                    Property.neighborhood,
                    Property.address,
                    Property.monthly_price,
                    Property.bedrooms,
                    Property.bathrooms,
                    _cover_image_url().label("cover_image_url"),
                )
                .where(*conditions)
                .order_by(*order_by)
                .limit(page_size)
                .offset((page - 1) * page_size)
            )
            items = [
                PublicListItem(
                    id=r.id,
                    title=r.title,
                    description=r.description,
                    city=r.city,
                    neighborhood=r.neighborhood,
                    address=r.address,
                    monthly_price=r.monthly_price,
                    bedrooms=r.bedrooms,
                    bathrooms=r.bathrooms,
                    cover_image_url=r.cover_image_url,
                )
                for r in result.all()
            ]
            return SearchPage(
                items=items,
                page=page,
                page_size=page_size,
                total_items=total_items,
                total_pages=total_pages(total_items, page_size),
            )

        return await self._read(query)
