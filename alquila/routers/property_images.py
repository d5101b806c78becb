import logging
import uuid

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile

from alquila.core.deps import (
    Principal,
    ensure_property_write_access,
    get_image_storage,
    get_repository,
    require_any_role,
)
from alquila.core.errors import ApiError, ErrorKind, FieldErrors
from alquila.core.roles import ROLE_ADMIN, ROLE_OWNER
from alquila.schemas.property_image import ImageOrderPatchRequest, PropertyImageResponse
from alquila.services.image_storage import ImageStorage, StoredImageFile
from alquila.services.properties_repository import (
    ImageOrderError,
    ImageOrderItem,
    NewPropertyImage,
    PropertiesRepository,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/properties", tags=["property-images"])

MAX_IMAGES_PER_PROPERTY = 15
MAX_IMAGE_SIZE = 5 * 1024 * 1024  # 5 MB
ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp")

_owner_or_admin = require_any_role(ROLE_OWNER, ROLE_ADMIN)


def _file_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    # Spooled by the multipart parser, so seeking the underlying file is cheap
    position = upload.file.tell()
    upload.file.seek(0, 2)
    size = upload.file.tell()
    upload.file.seek(position)
    return size


def _validate_uploads(uploads: list[UploadFile]) -> FieldErrors:
    """Per-file problems keyed by file name, plus the per-request limit."""
    errors: FieldErrors = {}

    if len(uploads) > MAX_IMAGES_PER_PROPERTY:
        errors["files"] = [f"You can upload at most {MAX_IMAGES_PER_PROPERTY} images per request."]

    for upload in uploads:
        key = upload.filename or "file"
        content_type = (upload.content_type or "").strip().lower()
        size = _file_size(upload)

        if content_type not in ALLOWED_MIME_TYPES:
            errors.setdefault(key, []).append(
                f"Unsupported format. Allowed: {', '.join(ALLOWED_MIME_TYPES)}."
            )
        if size <= 0:
            errors.setdefault(key, []).append("Empty file is not allowed.")
        if size > MAX_IMAGE_SIZE:
            errors.setdefault(key, []).append(
                f"File exceeds max size of {MAX_IMAGE_SIZE // (1024 * 1024)} MB."
            )

    return errors


# ─── List images ──────────────────────────────────────────────────────────────

@router.get("/{property_id}/images", response_model=list[PropertyImageResponse])
async def list_property_images(
    property_id: uuid.UUID,
    repository: PropertiesRepository = Depends(get_repository),
):
    if await repository.get_by_id(property_id) is None:
        raise ApiError(ErrorKind.NOT_FOUND, "Property not found")
    return await repository.list_images(property_id)


# ─── Upload images ────────────────────────────────────────────────────────────

@router.post("/{property_id}/images", response_model=list[PropertyImageResponse])
async def upload_property_images(
    property_id: uuid.UUID,
    request: Request,
    principal: Principal = Depends(_owner_or_admin),
    repository: PropertiesRepository = Depends(get_repository),
    storage: ImageStorage = Depends(get_image_storage),
):
    await ensure_property_write_access(property_id, principal, repository)

    async with request.form() as form:
        uploads = [value for _, value in form.multi_items() if isinstance(value, UploadFile)]
        if not uploads:
            raise ApiError.field("files", "At least one image file is required.")

        errors = _validate_uploads(uploads)
        if errors:
            raise ApiError.validation(errors)

        existing_count = await repository.count_images(property_id)
        if existing_count + len(uploads) > MAX_IMAGES_PER_PROPERTY:
            raise ApiError.field("files", f"Maximum {MAX_IMAGES_PER_PROPERTY} images per property.")

        # Orders stay unique per property; a reorder may have moved one past the count
        next_order = existing_count
        if existing_count:
            existing = await repository.list_images(property_id)
            next_order = max(existing_count, max(image.display_order for image in existing) + 1)

        stored: list[StoredImageFile] = []
        try:
            for upload in uploads:
                stored.append(await storage.save(
                    property_id,
                    upload,
                    (upload.content_type or "").strip().lower(),
                    _file_size(upload),
                ))

            created = await repository.add_images(property_id, [
                NewPropertyImage(
                    storage_path=file.storage_path,
                    public_url=file.public_url,
                    mime_type=file.mime_type,
                    file_size_bytes=file.file_size_bytes,
                    display_order=next_order + offset,
                )
                for offset, file in enumerate(stored)
            ])
        except Exception:
            for file in stored:
                await storage.discard(file.storage_path)
            raise

    logger.info("Uploaded %d image(s) to property %s", len(created), property_id)
    return created


# ─── Reorder images ───────────────────────────────────────────────────────────

@router.patch("/{property_id}/images/order", response_model=list[PropertyImageResponse])
async def reorder_property_images(
    property_id: uuid.UUID,
    payload: ImageOrderPatchRequest,
    principal: Principal = Depends(_owner_or_admin),
    repository: PropertiesRepository = Depends(get_repository),
):
    await ensure_property_write_access(property_id, principal, repository)

    items = payload.items or []
    if not items:
        raise ApiError.field("items", "At least one order item is required.")
    if any(item.display_order < 0 for item in items):
        raise ApiError.field("displayOrder", "displayOrder cannot be negative.")
    if len({item.image_id for item in items}) != len(items):
        raise ApiError.field("items", "imageId values must be unique.")
    if len({item.display_order for item in items}) != len(items):
        raise ApiError.field("items", "displayOrder values must be unique.")

    try:
        reordered = await repository.reorder_images(
            property_id,
            [ImageOrderItem(image_id=item.image_id, display_order=item.display_order) for item in items],
        )
    except ImageOrderError as exc:
        raise ApiError.field("items", str(exc)) from exc

    logger.info("Reordered %d image(s) of property %s", len(items), property_id)
    return reordered
