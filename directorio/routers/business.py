"""
directorio/routers/business.py — Listing CRUD and image management
Endpoints: /api/business (POST), /api/business/mine,
           /api/business/{id} (GET, PATCH, DELETE),
           /api/business/{id}/images (POST, DELETE)
Create and image upload are multipart: listing JSON in the "data" field,
files in "images".
"""
from __future__ import annotations

from typing import Optional

import pydantic
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from loguru import logger

from directorio.core.auth import get_current_user, get_storage, get_store
from directorio.core.errors import ValidationError, field_errors
from directorio.models import (
    AuthUser,
    Business,
    BusinessCreateRequest,
    BusinessUpdateRequest,
    ImageDeleteRequest,
)
from directorio.services import businesses as business_service
from directorio.services import subscriptions
from directorio.services.businesses import ImageUpload

router = APIRouter()


async def _read_uploads(files: Optional[list[UploadFile]]) -> list[ImageUpload]:
    uploads = []
    for file in files or []:
        uploads.append(ImageUpload(
            filename=file.filename or "imagen",
            content_type=file.content_type or "application/octet-stream",
            content=await file.read(),
        ))
    return uploads


def _progress_logger(business_label: str):
    def _log(progress: float) -> None:
        logger.debug(f"Image upload for {business_label}: {progress:.0f}%")
    return _log


# ──────────────────────────────────────────────────────────────────────────────
# Listing
# ──────────────────────────────────────────────────────────────────────────────

@router.post("", response_model=Business, status_code=status.HTTP_201_CREATED)
async def create_business(
    data: str = Form(...),
    images: Optional[list[UploadFile]] = File(None),
    user: AuthUser = Depends(get_current_user),
    store=Depends(get_store),
    storage=Depends(get_storage),
) -> Business:
    try:
        request = BusinessCreateRequest.model_validate_json(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(errors=field_errors(exc.errors()))

    profile = await subscriptions.get_or_create_profile(store, user)
    uploads = await _read_uploads(images)
    return await business_service.create_business(
        store, storage, request, uploads, user.uid, profile,
        on_progress=_progress_logger(f"new listing of {user.uid}"),
    )


@router.get("/mine", response_model=list[Business])
async def my_businesses(
    user: AuthUser = Depends(get_current_user),
    store=Depends(get_store),
) -> list[Business]:
    return await business_service.list_owner_businesses(store, user.uid)


@router.get("/{business_id}", response_model=Business)
async def get_business(business_id: str, store=Depends(get_store)) -> Business:
    return await business_service.get_business(store, business_id)


@router.patch("/{business_id}", response_model=Business)
async def update_business(
    business_id: str,
    body: BusinessUpdateRequest,
    user: AuthUser = Depends(get_current_user),
    store=Depends(get_store),
    storage=Depends(get_storage),
) -> Business:
    return await business_service.update_business(store, storage, business_id, body, user.uid)


@router.delete("/{business_id}")
async def delete_business(
    business_id: str,
    user: AuthUser = Depends(get_current_user),
    store=Depends(get_store),
    storage=Depends(get_storage),
) -> dict:
    await business_service.delete_business(store, storage, business_id, user.uid)
    return {"status": "deleted", "id": business_id}


# ──────────────────────────────────────────────────────────────────────────────
# Images
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/{business_id}/images", response_model=Business)
async def upload_images(
    business_id: str,
    images: list[UploadFile] = File(...),
    user: AuthUser = Depends(get_current_user),
    store=Depends(get_store),
    storage=Depends(get_storage),
) -> Business:
    profile = await subscriptions.get_or_create_profile(store, user)
    uploads = await _read_uploads(images)
    return await business_service.add_images(
        store, storage, business_id, uploads, user.uid, profile,
        on_progress=_progress_logger(business_id),
    )


@router.delete("/{business_id}/images", response_model=Business)
async def delete_image(
    business_id: str,
    body: ImageDeleteRequest,
    user: AuthUser = Depends(get_current_user),
    store=Depends(get_store),
    storage=Depends(get_storage),
) -> Business:
    return await business_service.remove_image(store, storage, business_id, body.url, user.uid)
