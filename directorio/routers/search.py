"""
directorio/routers/search.py — Public listing search
GET /api/search?q=&cursor=&page_size=&category=&province=&city=
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from directorio.core.auth import get_store
from directorio.core.errors import ValidationError
from directorio.models import SearchFilters, SearchPage
from directorio.services import search as search_service
from directorio.utils.timezone import parse_cursor

router = APIRouter()


@router.get("/search", response_model=SearchPage)
async def search_businesses(
    q: Optional[str] = Query(None, max_length=100),
    cursor: Optional[str] = None,
    page_size: Optional[int] = None,
    category: Optional[str] = None,
    province: Optional[str] = None,
    city: Optional[str] = None,
    store=Depends(get_store),
) -> SearchPage:
    try:
        start_after = parse_cursor(cursor)
    except ValueError:
        raise ValidationError(errors={"cursor": "El cursor de paginación no es válido"})

    filters = None
    if category or province or city:
        filters = SearchFilters(category=category, province=province, city=city)

    return await search_service.search(
        store, term=q, cursor=start_after, page_size=page_size, filters=filters,
    )
