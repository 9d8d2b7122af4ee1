"""
tests/test_reviews.py — Review aggregation, moderation and concurrent writes
"""
from __future__ import annotations

import asyncio

import pytest

from directorio.core.errors import (
    BusinessNotFoundError,
    DuplicateReviewError,
    NoValidTagsError,
    ReviewNotFoundError,
    SelfReviewRejectedError,
    UnauthorizedError,
    WriteConflictError,
)
from directorio.models import Business, Review
from directorio.services import reviews
from directorio.services.reviews import (
    apply_new_review,
    compute_rating,
    remove_review,
    round_rating,
)

OWNER = "owner-1"
BIZ = "biz-1"


def _business(make_business, ratings=(5, 3)) -> Business:
    return Business.from_document(BIZ, make_business(ratings=ratings))


# ── Rating arithmetic ─────────────────────────────────────────────────────────

def test_rating_zero_without_reviews():
    assert compute_rating([]) == 0.0


def test_rating_rounds_half_up():
    assert round_rating(4.25) == 4.3
    assert round_rating(3.333333) == 3.3


def test_rating_scenario_add_then_delete(make_business):
    business = _business(make_business)
    assert compute_rating(business.reviews) == 4.0

    business, review = apply_new_review(business, "new-user", 4, ["Servicio"])
    assert business.rating == 4.0
    assert review in business.reviews

    three = next(r for r in business.reviews if r.rating == 3)
    business = remove_review(business, three.id)
    assert business.rating == 4.5
    assert [r.rating for r in business.reviews] == [5, 4]


# ── Rejections leave the list unchanged ───────────────────────────────────────

def test_self_review_rejected(make_business):
    business = _business(make_business)
    with pytest.raises(SelfReviewRejectedError):
        apply_new_review(business, OWNER, 5, ["Calidad"])
    assert len(business.reviews) == 2


def test_duplicate_review_rejected(make_business):
    business = _business(make_business)
    with pytest.raises(DuplicateReviewError):
        apply_new_review(business, "reviewer-0", 1, ["Calidad"])


def test_blank_tags_rejected(make_business):
    business = _business(make_business)
    with pytest.raises(NoValidTagsError):
        apply_new_review(business, "new-user", 4, ["  ", ""])


def test_self_check_runs_before_tag_check(make_business):
    business = _business(make_business)
    with pytest.raises(SelfReviewRejectedError):
        apply_new_review(business, OWNER, 4, [])


def test_tags_trimmed(make_business):
    _, review = apply_new_review(_business(make_business), "u", 4, [" Precio ", "", "Calidad"])
    assert review.tags == ["Precio", "Calidad"]


def test_tags_stored_as_plain_text(make_business):
    _, review = apply_new_review(_business(make_business), "u", 4, ["<b>Atención</b>", "Precio &amp; valor"])
    assert review.tags == ["Atención", "Precio & valor"]


def test_input_business_not_mutated(make_business):
    business = _business(make_business)
    apply_new_review(business, "u", 1, ["Precio"])
    assert len(business.reviews) == 2
    assert business.rating == 4.0


# ── Store-backed operations ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_submit_review_persists_list_and_rating(store, make_business):
    store.seed("businesses", BIZ, make_business(ratings=(5, 3)))

    review = await reviews.submit_review(store, BIZ, "new-user", 4, ["Atención"])

    raw = store.raw("businesses", BIZ)
    assert raw["rating"] == 4.0
    assert len(raw["reviews"]) == 3
    assert raw["reviews"][-1]["userId"] == "new-user"
    assert raw["reviews"][-1]["id"] == review.id


@pytest.mark.asyncio
async def test_submit_review_unknown_business(store):
    with pytest.raises(BusinessNotFoundError):
        await reviews.submit_review(store, "missing", "u", 4, ["Calidad"])


@pytest.mark.asyncio
async def test_rejected_review_writes_nothing(store, make_business):
    store.seed("businesses", BIZ, make_business(ratings=(5,)))
    with pytest.raises(SelfReviewRejectedError):
        await reviews.submit_review(store, BIZ, OWNER, 5, ["Calidad"])
    assert store.conditional_writes == 0
    assert len(store.raw("businesses", BIZ)["reviews"]) == 1


@pytest.mark.asyncio
async def test_conflicting_write_is_rerun(store, make_business):
    store.seed("businesses", BIZ, make_business(ratings=(5, 3)))
    store.conflicts_to_raise = 2

    await reviews.submit_review(store, BIZ, "new-user", 4, ["Calidad"])

    assert store.conditional_writes == 3
    assert len(store.raw("businesses", BIZ)["reviews"]) == 3


@pytest.mark.asyncio
async def test_conflict_exhausts_attempts(store, make_business):
    store.seed("businesses", BIZ, make_business(ratings=(5,)))
    store.conflicts_to_raise = 10

    with pytest.raises(WriteConflictError):
        await reviews.submit_review(store, BIZ, "new-user", 4, ["Calidad"])
    assert len(store.raw("businesses", BIZ)["reviews"]) == 1


@pytest.mark.asyncio
async def test_concurrent_duplicate_detected_on_rerun(store, make_business):
    """Both submissions read the same version; the loser re-reads and sees the winner."""
    store.seed("businesses", BIZ, make_business(ratings=(5,)))

    results = await asyncio.gather(
        reviews.submit_review(store, BIZ, "racer", 4, ["Calidad"]),
        reviews.submit_review(store, BIZ, "racer", 2, ["Precio"]),
        return_exceptions=True,
    )

    assert sum(isinstance(r, Review) for r in results) == 1
    assert sum(isinstance(r, DuplicateReviewError) for r in results) == 1
    # winner writes once, loser conflicts once before its re-read
    assert store.conditional_writes == 2
    stored = store.raw("businesses", BIZ)["reviews"]
    assert [r["userId"] for r in stored].count("racer") == 1


@pytest.mark.asyncio
async def test_flag_review_increments_count(store, make_business):
    store.seed("businesses", BIZ, make_business(ratings=(5, 3)))
    review_id = store.raw("businesses", BIZ)["reviews"][0]["id"]

    await reviews.flag_review(store, BIZ, review_id, "Spam", actor_id="someone")
    business = await reviews.flag_review(store, BIZ, review_id, "Ofensivo", actor_id="other")

    flags = business.reviews[0].flags
    assert flags.count == 2
    assert flags.reasons == ["Spam", "Ofensivo"]
    assert store.raw("businesses", BIZ)["rating"] == 4.0


@pytest.mark.asyncio
async def test_flag_unknown_review(store, make_business):
    store.seed("businesses", BIZ, make_business(ratings=(5,)))
    with pytest.raises(ReviewNotFoundError):
        await reviews.flag_review(store, BIZ, "nope", "Spam")


@pytest.mark.asyncio
async def test_owner_response(store, make_business):
    store.seed("businesses", BIZ, make_business(ratings=(2,)))
    review_id = store.raw("businesses", BIZ)["reviews"][0]["id"]

    business = await reviews.respond_to_review(
        store, BIZ, review_id, "  Gracias por su visita  ", actor_id=OWNER,
    )
    assert business.reviews[0].owner_response.text == "Gracias por su visita"
    stored = Review.model_validate(store.raw("businesses", BIZ)["reviews"][0])
    assert stored.owner_response.text == "Gracias por su visita"


@pytest.mark.asyncio
async def test_only_owner_may_respond_or_delete(store, make_business):
    store.seed("businesses", BIZ, make_business(ratings=(2,)))
    review_id = store.raw("businesses", BIZ)["reviews"][0]["id"]

    with pytest.raises(UnauthorizedError):
        await reviews.respond_to_review(store, BIZ, review_id, "Hola", actor_id="stranger")
    with pytest.raises(UnauthorizedError):
        await reviews.delete_review(store, BIZ, review_id, actor_id="stranger")


@pytest.mark.asyncio
async def test_delete_review_recomputes_rating(store, make_business):
    store.seed("businesses", BIZ, make_business(ratings=(5, 4, 3)))
    three = next(r for r in store.raw("businesses", BIZ)["reviews"] if r["rating"] == 3)

    business = await reviews.delete_review(store, BIZ, three["id"], actor_id=OWNER)

    assert business.rating == 4.5
    assert store.raw("businesses", BIZ)["rating"] == 4.5


@pytest.mark.asyncio
async def test_delete_last_review_resets_rating(store, make_business):
    store.seed("businesses", BIZ, make_business(ratings=(3,)))
    review_id = store.raw("businesses", BIZ)["reviews"][0]["id"]

    business = await reviews.delete_review(store, BIZ, review_id)
    assert business.rating == 0.0
    assert store.raw("businesses", BIZ)["reviews"] == []
