"""
directorio/services/reviews.py — Review aggregation on a business listing
The review list is embedded in the business document; every mutation
rewrites the list (and the rating when it changes) in one document update.

Writes are conditioned on the update_time read at the start of the cycle.
If another request wrote first, the whole read-check-write cycle is re-run,
so two simultaneous reviews from one user cannot both pass the duplicate check.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Callable, Iterable, Optional

from loguru import logger

from directorio.clients.firestore_client import DocumentStore
from directorio.config import get_settings
from directorio.core import logging as app_logging
from directorio.core.errors import (
    BusinessNotFoundError,
    DuplicateReviewError,
    NoValidTagsError,
    ReviewNotFoundError,
    SelfReviewRejectedError,
    UnauthorizedError,
    ValidationError,
    WriteConflictError,
)
from directorio.models import Business, OwnerResponse, Review, ReviewFlags
from directorio.utils.timezone import utc_now
from directorio.utils.validators import clean_tags

settings = get_settings()


# ──────────────────────────────────────────────────────────────────────────────
# Rating arithmetic
# ──────────────────────────────────────────────────────────────────────────────

def round_rating(value: float) -> float:
    """One decimal, halves rounded up (4.25 -> 4.3)."""
    return math.floor(value * 10 + 0.5) / 10


def compute_rating(reviews: Iterable[Review]) -> float:
    """Mean of review ratings to one decimal; 0 when there are none."""
    ratings = [r.rating for r in reviews]
    if not ratings:
        return 0.0
    return round_rating(sum(ratings) / len(ratings))


def _find_review(business: Business, review_id: str) -> int:
    for index, review in enumerate(business.reviews):
        if review.id == review_id:
            return index
    raise ReviewNotFoundError()


# ──────────────────────────────────────────────────────────────────────────────
# Pure transitions (Business in, new Business out; input is never mutated)
# ──────────────────────────────────────────────────────────────────────────────

def apply_new_review(
    business: Business,
    reviewer_id: str,
    rating: int,
    tags: list[str],
    now: Optional[datetime] = None,
) -> tuple[Business, Review]:
    """
    Checks run in order, first failure wins:
    self-review, duplicate reviewer, no usable tags.
    """
    if reviewer_id == business.owner_id:
        raise SelfReviewRejectedError()

    if any(r.user_id == reviewer_id for r in business.reviews):
        raise DuplicateReviewError()

    valid_tags = clean_tags(tags)
    if not valid_tags:
        raise NoValidTagsError()

    if not 1 <= rating <= 5:
        raise ValidationError(errors={"rating": "La calificación debe estar entre 1 y 5"})

    now = now or utc_now()
    review = Review(user_id=reviewer_id, rating=rating, tags=valid_tags, created_at=now)
    reviews = [*business.reviews, review]
    updated = business.model_copy(update={
        "reviews": reviews,
        "rating": compute_rating(reviews),
        "updated_at": now,
    })
    return updated, review


def apply_flag(
    business: Business,
    review_id: str,
    reason: str,
    now: Optional[datetime] = None,
) -> Business:
    index = _find_review(business, review_id)
    review = business.reviews[index]
    current = review.flags or ReviewFlags()
    flagged = review.model_copy(update={
        "flags": ReviewFlags(count=current.count + 1, reasons=[*current.reasons, reason]),
    })
    reviews = list(business.reviews)
    reviews[index] = flagged
    return business.model_copy(update={"reviews": reviews, "updated_at": now or utc_now()})


def apply_owner_response(
    business: Business,
    review_id: str,
    text: str,
    now: Optional[datetime] = None,
) -> Business:
    """Attach (or replace) the owner's public reply on one review."""
    now = now or utc_now()
    index = _find_review(business, review_id)
    responded = business.reviews[index].model_copy(update={
        "owner_response": OwnerResponse(text=text.strip(), created_at=now),
    })
    reviews = list(business.reviews)
    reviews[index] = responded
    return business.model_copy(update={"reviews": reviews, "updated_at": now})


def remove_review(
    business: Business,
    review_id: str,
    now: Optional[datetime] = None,
) -> Business:
    _find_review(business, review_id)
    reviews = [r for r in business.reviews if r.id != review_id]
    return business.model_copy(update={
        "reviews": reviews,
        "rating": compute_rating(reviews),
        "updated_at": now or utc_now(),
    })


def _require_owner(business: Business, actor_id: Optional[str]) -> None:
    if actor_id is not None and actor_id != business.owner_id:
        raise UnauthorizedError("Solo el dueño del negocio puede gestionar sus reseñas")


# ──────────────────────────────────────────────────────────────────────────────
# Store-backed operations
# ──────────────────────────────────────────────────────────────────────────────

async def _mutate(
    store: DocumentStore,
    business_id: str,
    transition: Callable[[Business], Business],
    include_rating: bool,
) -> tuple[Business, int]:
    """Read, apply `transition`, conditionally write. Returns (business, attempts)."""
    attempts = max(1, settings.review_write_attempts)
    for attempt in range(1, attempts + 1):
        doc = await store.get(settings.businesses_collection, business_id)
        if doc is None:
            raise BusinessNotFoundError()

        updated = transition(Business.from_document(doc.id, doc.data))

        fields = {
            "reviews": [r.to_document() for r in updated.reviews],
            "updatedAt": updated.updated_at,
        }
        if include_rating:
            fields["rating"] = updated.rating

        try:
            await store.update(
                settings.businesses_collection, business_id, fields,
                expected_version=doc.version,
            )
        except WriteConflictError:
            if attempt == attempts:
                raise
            logger.info(
                f"Concurrent write on business {business_id}; "
                f"re-reading (attempt {attempt}/{attempts})."
            )
            continue
        return updated, attempt

    raise WriteConflictError()  # unreachable: loop returns or raises


async def submit_review(
    store: DocumentStore,
    business_id: str,
    reviewer_id: str,
    rating: int,
    tags: list[str],
) -> Review:
    """Add a review and recompute the listing rating."""
    created: list[Review] = []

    def _transition(business: Business) -> Business:
        updated, review = apply_new_review(business, reviewer_id, rating, tags)
        created[:] = [review]
        return updated

    business, attempts = await _mutate(store, business_id, _transition, include_rating=True)
    app_logging.log_review_event(
        "submit", business_id, created[0].id, reviewer_id, business.rating, attempts,
    )
    return created[0]


async def flag_review(
    store: DocumentStore,
    business_id: str,
    review_id: str,
    reason: str,
    actor_id: Optional[str] = None,
) -> Business:
    business, attempts = await _mutate(
        store, business_id,
        lambda b: apply_flag(b, review_id, reason),
        include_rating=False,
    )
    app_logging.log_review_event("flag", business_id, review_id, actor_id, attempts=attempts)
    return business


async def delete_review(
    store: DocumentStore,
    business_id: str,
    review_id: str,
    actor_id: Optional[str] = None,
) -> Business:
    """Remove one review; `actor_id`, when given, must own the business."""

    def _transition(business: Business) -> Business:
        _require_owner(business, actor_id)
        return remove_review(business, review_id)

    business, attempts = await _mutate(store, business_id, _transition, include_rating=True)
    app_logging.log_review_event(
        "delete", business_id, review_id, actor_id, business.rating, attempts,
    )
    return business


async def respond_to_review(
    store: DocumentStore,
    business_id: str,
    review_id: str,
    text: str,
    actor_id: Optional[str] = None,
) -> Business:
    def _transition(business: Business) -> Business:
        _require_owner(business, actor_id)
        return apply_owner_response(business, review_id, text)

    business, attempts = await _mutate(store, business_id, _transition, include_rating=False)
    app_logging.log_review_event("respond", business_id, review_id, actor_id, attempts=attempts)
    return business
