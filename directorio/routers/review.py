"""
directorio/routers/review.py — Reviews on a listing
Endpoints: POST /api/review/{business_id}
           POST /api/review/{business_id}/{review_id}/flag
           POST /api/review/{business_id}/{review_id}/response
           DELETE /api/review/{business_id}/{review_id}
Any signed-in user may review (not their own listing) or flag; replying and
deleting are for the listing owner.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from directorio.core.auth import get_current_user, get_store
from directorio.core.errors import ReviewNotFoundError
from directorio.models import (
    AuthUser,
    Business,
    FlagReviewRequest,
    OwnerResponseRequest,
    Review,
    ReviewCreateRequest,
)
from directorio.services import reviews as review_service
from directorio.utils.validators import sanitize_text

router = APIRouter()


def _review_in(business: Business, review_id: str) -> Review:
    review = next((r for r in business.reviews if r.id == review_id), None)
    if review is None:
        raise ReviewNotFoundError()
    return review


@router.post("/{business_id}", response_model=Review, status_code=status.HTTP_201_CREATED)
async def submit_review(
    business_id: str,
    body: ReviewCreateRequest,
    user: AuthUser = Depends(get_current_user),
    store=Depends(get_store),
) -> Review:
    return await review_service.submit_review(
        store, business_id, user.uid, body.rating, body.tags,
    )


@router.post("/{business_id}/{review_id}/flag", response_model=Review)
async def flag_review(
    business_id: str,
    review_id: str,
    body: FlagReviewRequest,
    user: AuthUser = Depends(get_current_user),
    store=Depends(get_store),
) -> Review:
    business = await review_service.flag_review(
        store, business_id, review_id, sanitize_text(body.reason), actor_id=user.uid,
    )
    return _review_in(business, review_id)


@router.post("/{business_id}/{review_id}/response", response_model=Review)
async def respond_to_review(
    business_id: str,
    review_id: str,
    body: OwnerResponseRequest,
    user: AuthUser = Depends(get_current_user),
    store=Depends(get_store),
) -> Review:
    business = await review_service.respond_to_review(
        store, business_id, review_id, sanitize_text(body.text), actor_id=user.uid,
    )
    return _review_in(business, review_id)


@router.delete("/{business_id}/{review_id}")
async def delete_review(
    business_id: str,
    review_id: str,
    user: AuthUser = Depends(get_current_user),
    store=Depends(get_store),
) -> dict:
    business = await review_service.delete_review(
        store, business_id, review_id, actor_id=user.uid,
    )
    return {"status": "deleted", "rating": business.rating, "reviewCount": len(business.reviews)}
