"""
directorio/services/search.py — Listing search and filters
Firestore has no full-text index, so two modes:
  - no term: store-side ordering + cursor paging, filters applied to the page
    (a filtered page can hold fewer than page_size items even when more
    matches exist further on);
  - term: whole collection fetched newest-first, substring match on name or
    description plus filters in memory, truncated to page_size. The returned
    cursor is best-effort only.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from loguru import logger

from directorio.clients.firestore_client import DocumentStore, StoredDocument
from directorio.config import get_settings
from directorio.core.errors import ValidationError
from directorio.models import Business, SearchFilters, SearchPage
from directorio.utils.timezone import ensure_utc

settings = get_settings()

ORDER_FIELD = "createdAt"


def matches_filters(business: Business, filters: Optional[SearchFilters]) -> bool:
    """
    Category is plain equality. A province filter also lets national
    businesses through; a city filter never does.
    """
    if filters is None:
        return True

    if filters.category and business.category != filters.category:
        return False

    location = business.location
    if filters.province and not (
        location.is_national or location.province == filters.province
    ):
        return False

    if filters.city and (location.is_national or location.city != filters.city):
        return False

    return True


def matches_term(business: Business, term: str) -> bool:
    """Case-insensitive substring on name or description. `term` pre-lowered."""
    return term in business.name.lower() or term in business.description.lower()


def _to_businesses(docs: list[StoredDocument]) -> list[Business]:
    businesses = []
    for doc in docs:
        try:
            businesses.append(Business.from_document(doc.id, doc.data))
        except ValueError as exc:  # pydantic.ValidationError is a ValueError
            logger.warning(f"Skipping malformed business {doc.id}: {exc}")
    return businesses


def _raw_cursor(doc: StoredDocument) -> Optional[datetime]:
    value = doc.data.get(ORDER_FIELD)
    return ensure_utc(value) if isinstance(value, datetime) else None


def clamp_page_size(page_size: Optional[int]) -> int:
    if page_size is None:
        return settings.default_page_size
    if page_size < 1:
        raise ValidationError(errors={"page_size": "El tamaño de página debe ser mayor a 0"})
    return min(page_size, settings.max_page_size)


async def search(
    store: DocumentStore,
    term: Optional[str] = None,
    cursor: Optional[datetime] = None,
    page_size: Optional[int] = None,
    filters: Optional[SearchFilters] = None,
) -> SearchPage:
    size = clamp_page_size(page_size)
    needle = (term or "").strip().lower()

    if needle:
        docs = await store.query(
            settings.businesses_collection, order_by=ORDER_FIELD, descending=True,
        )
        items = [
            b for b in _to_businesses(docs)
            if matches_term(b, needle) and matches_filters(b, filters)
        ][:size]
        next_cursor = items[-1].created_at if items else None
        return SearchPage(items=items, next_cursor=next_cursor)

    docs = await store.query(
        settings.businesses_collection,
        order_by=ORDER_FIELD,
        descending=True,
        limit=size,
        start_after=cursor,
    )
    page = _to_businesses(docs)
    # Cursor follows the raw page, skipped documents included; a short page is the last
    next_cursor = _raw_cursor(docs[-1]) if len(docs) == size else None
    items = [b for b in page if matches_filters(b, filters)]
    return SearchPage(items=items, next_cursor=next_cursor)
