"""
directorio/routers/subscription.py — Profile, plan and reference-data endpoints
Endpoints: /api/subscription, /api/subscription/plans, /api/locations
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from directorio.core.auth import get_current_user, get_store
from directorio.models import AuthUser, UserProfile
from directorio.services import subscriptions
from directorio.utils.locations import BUSINESS_CATEGORIES, PROVINCES

router = APIRouter()


@router.get("/subscription")
async def my_subscription(
    user: AuthUser = Depends(get_current_user),
    store=Depends(get_store),
) -> dict:
    """Profile plus what the current plan allows."""
    profile: UserProfile = await subscriptions.get_or_create_profile(store, user)
    return {
        "profile": profile.model_dump(mode="json", by_alias=True),
        "isActive": subscriptions.is_active(profile),
        "maxBusinesses": subscriptions.max_businesses(profile),
        "maxImages": subscriptions.max_images(profile),
    }


@router.get("/subscription/plans")
async def subscription_plans() -> dict:
    return {
        "plans": subscriptions.plans(),
        "paymentMethods": subscriptions.PAYMENT_METHODS,
        "periods": list(subscriptions.SUBSCRIPTION_PERIODS),
    }


@router.get("/locations")
async def locations() -> dict:
    """Provinces with their cities, and listing categories."""
    return {
        "provinces": [
            {"id": p.id, "name": p.name, "cities": p.city_names} for p in PROVINCES
        ],
        "categories": [c.model_dump() for c in BUSINESS_CATEGORIES],
    }
