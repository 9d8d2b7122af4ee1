"""
directorio/services/businesses.py — Listing lifecycle
Create (with plan limits and image upload), read, update, delete, and the
per-owner listing used by the "mi negocio" page.
"""
from __future__ import annotations

from typing import Any, Callable, Optional, Protocol

from loguru import logger
from pydantic import BaseModel

from directorio.clients.firestore_client import DocumentStore
from directorio.clients.storage_client import build_image_path
from directorio.config import get_settings
from directorio.core.errors import (
    BusinessNotFoundError,
    DirectoryError,
    NotFoundError,
    SubscriptionLimitError,
    UnauthorizedError,
    ValidationError,
)
from directorio.models import (
    Business,
    BusinessCreateRequest,
    BusinessUpdateRequest,
    UserProfile,
)
from directorio.services import subscriptions
from directorio.utils.timezone import utc_now
from directorio.utils.validators import sanitize_text, validate_business_data

settings = get_settings()

ProgressCallback = Callable[[float], None]


class ImageUpload(BaseModel):
    filename: str
    content_type: str
    content: bytes


class ImageStorage(Protocol):
    async def upload(
        self,
        content: bytes,
        path: str,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str: ...

    async def delete(self, url: str) -> None: ...


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────

def ensure_owner(business: Business, actor_id: str) -> None:
    if business.owner_id != actor_id:
        raise UnauthorizedError("No tienes permiso para modificar este negocio")


def check_images(images: list[ImageUpload], existing: int, profile: Optional[UserProfile]) -> None:
    """Type, size and per-plan count limits."""
    errors: dict[str, str] = {}
    limit = subscriptions.max_images(profile)
    if limit is not None and existing + len(images) > limit:
        errors["images"] = f"Tu plan permite hasta {limit} fotos por negocio"
    for image in images:
        if not image.content_type.startswith("image/"):
            errors["images"] = f"El archivo {image.filename} no es una imagen"
        elif len(image.content) > settings.max_image_bytes:
            max_mb = settings.max_image_bytes // (1024 * 1024)
            errors["images"] = f"La imagen {image.filename} supera los {max_mb} MB"
    if errors:
        raise ValidationError(errors=errors)


async def _upload_all(
    storage: ImageStorage,
    business_id: str,
    images: list[ImageUpload],
    on_progress: Optional[ProgressCallback],
) -> list[str]:
    """Sequential upload; progress is reported across all images (0-100)."""
    urls: list[str] = []
    total = len(images)
    try:
        for index, image in enumerate(images):
            def _per_image(progress: float, index: int = index) -> None:
                if on_progress is not None:
                    on_progress((index * 100 + progress) / total)

            url = await storage.upload(
                image.content,
                build_image_path(business_id, image.filename),
                image.content_type,
                _per_image,
            )
            urls.append(url)
    except Exception:
        await _delete_images(storage, urls)
        raise
    return urls


async def _delete_images(storage: ImageStorage, urls: list[str]) -> None:
    """Best effort: a missing or undeletable image never blocks the caller."""
    for url in urls:
        try:
            await storage.delete(url)
        except (DirectoryError, ValueError) as exc:
            logger.warning(f"Could not delete image {url}: {exc}")


def _sanitized(request: BusinessCreateRequest | BusinessUpdateRequest) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    if request.name is not None:
        fields["name"] = sanitize_text(request.name)
    if request.description is not None:
        fields["description"] = sanitize_text(request.description)
    if request.category is not None:
        fields["category"] = request.category.strip()
    if request.location is not None:
        location = request.location
        if location.is_national:
            location = location.model_copy(update={"province": None, "city": None})
        fields["location"] = location
    if request.contact_info is not None:
        contact = request.contact_info
        fields["contact_info"] = contact.model_copy(update={
            "whatsapp": contact.whatsapp.strip(),
            "email": (contact.email or "").strip() or None,
            "instagram": (contact.instagram or "").strip() or None,
        })
    return fields


def _validate(business: Business, extra_images: int = 0) -> None:
    """`extra_images` counts files not uploaded yet."""
    errors = validate_business_data(
        business.model_dump(include={"name", "description", "category", "location", "contact_info"}),
        require_images=False,
    )
    if not business.images and not extra_images:
        errors["images"] = "Se requiere al menos una imagen"
    if errors:
        raise ValidationError(errors=errors)


# ──────────────────────────────────────────────────────────────────────────────
# Queries
# ──────────────────────────────────────────────────────────────────────────────

async def get_business(store: DocumentStore, business_id: str) -> Business:
    doc = await store.get(settings.businesses_collection, business_id)
    if doc is None:
        raise BusinessNotFoundError()
    return Business.from_document(doc.id, doc.data)


async def list_owner_businesses(store: DocumentStore, owner_id: str) -> list[Business]:
    docs = await store.query(
        settings.businesses_collection, where_equals={"ownerId": owner_id},
    )
    businesses = [Business.from_document(d.id, d.data) for d in docs]
    businesses.sort(key=lambda b: b.created_at, reverse=True)
    return businesses


# ──────────────────────────────────────────────────────────────────────────────
# Commands
# ──────────────────────────────────────────────────────────────────────────────

async def create_business(
    store: DocumentStore,
    storage: ImageStorage,
    request: BusinessCreateRequest,
    images: list[ImageUpload],
    owner_id: str,
    profile: Optional[UserProfile],
    on_progress: Optional[ProgressCallback] = None,
) -> Business:
    """
    Validate, enforce plan limits, write the document, then upload images
    under businesses/{id}/ and attach their URLs. If an upload fails the
    half-created listing is removed again.
    """
    now = utc_now()
    business = Business(
        **_sanitized(request),
        owner_id=owner_id,
        created_at=now,
        updated_at=now,
    )
    _validate(business, extra_images=len(images))
    check_images(images, 0, profile)

    owned = await list_owner_businesses(store, owner_id)
    if not subscriptions.can_create_business(profile, len(owned)):
        raise SubscriptionLimitError()

    business_id = await store.add(settings.businesses_collection, business.to_document())

    try:
        urls = await _upload_all(storage, business_id, images, on_progress)
    except Exception:
        await store.delete(settings.businesses_collection, business_id)
        raise

    updated_at = utc_now()
    await store.update(
        settings.businesses_collection, business_id,
        {"images": urls, "updatedAt": updated_at},
    )
    logger.info(f"Business {business_id} created by {owner_id} with {len(urls)} images.")
    return business.model_copy(update={"id": business_id, "images": urls, "updated_at": updated_at})


async def update_business(
    store: DocumentStore,
    storage: ImageStorage,
    business_id: str,
    request: BusinessUpdateRequest,
    actor_id: str,
) -> Business:
    """
    Partial update by the owner. `images` may only reorder or drop existing
    URLs; dropped ones are removed from storage.
    """
    business = await get_business(store, business_id)
    ensure_owner(business, actor_id)

    changes = _sanitized(request)
    dropped: list[str] = []
    if request.images is not None:
        unknown = [url for url in request.images if url not in business.images]
        if unknown:
            raise ValidationError(errors={"images": "Solo puedes reordenar o quitar imágenes existentes"})
        changes["images"] = list(dict.fromkeys(request.images))
        dropped = [url for url in business.images if url not in changes["images"]]

    if not changes:
        return business

    updated = business.model_copy(update={**changes, "updated_at": utc_now()})
    _validate(updated)

    document = updated.to_document()
    payload = {
        document_key: document[document_key]
        for field, document_key in _DOCUMENT_KEYS.items()
        if field in changes
    }
    payload["updatedAt"] = updated.updated_at
    await store.update(settings.businesses_collection, business_id, payload)
    await _delete_images(storage, dropped)
    return updated


_DOCUMENT_KEYS = {
    "name": "name",
    "description": "description",
    "category": "category",
    "location": "location",
    "contact_info": "contactInfo",
    "images": "images",
}


async def add_images(
    store: DocumentStore,
    storage: ImageStorage,
    business_id: str,
    images: list[ImageUpload],
    actor_id: str,
    profile: Optional[UserProfile],
    on_progress: Optional[ProgressCallback] = None,
) -> Business:
    business = await get_business(store, business_id)
    ensure_owner(business, actor_id)
    if not images:
        raise ValidationError(errors={"images": "Se requiere al menos una imagen"})
    check_images(images, len(business.images), profile)

    urls = await _upload_all(storage, business_id, images, on_progress)
    updated = business.model_copy(update={
        "images": [*business.images, *urls],
        "updated_at": utc_now(),
    })
    await store.update(
        settings.businesses_collection, business_id,
        {"images": updated.images, "updatedAt": updated.updated_at},
    )
    return updated


async def remove_image(
    store: DocumentStore,
    storage: ImageStorage,
    business_id: str,
    url: str,
    actor_id: str,
) -> Business:
    business = await get_business(store, business_id)
    ensure_owner(business, actor_id)
    if url not in business.images:
        raise NotFoundError("Imagen no encontrada")
    if len(business.images) == 1:
        raise ValidationError(errors={"images": "Se requiere al menos una imagen"})

    updated = business.model_copy(update={
        "images": [u for u in business.images if u != url],
        "updated_at": utc_now(),
    })
    await store.update(
        settings.businesses_collection, business_id,
        {"images": updated.images, "updatedAt": updated.updated_at},
    )
    await _delete_images(storage, [url])
    return updated


async def delete_business(
    store: DocumentStore,
    storage: ImageStorage,
    business_id: str,
    actor_id: str,
) -> None:
    """Delete the listing and, best effort, its stored images."""
    business = await get_business(store, business_id)
    ensure_owner(business, actor_id)
    await _delete_images(storage, business.images)
    await store.delete(settings.businesses_collection, business_id)
    logger.info(f"Business {business_id} deleted by {actor_id} ({len(business.images)} images).")
