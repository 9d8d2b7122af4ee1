"""
directorio/services/subscriptions.py — Plans, feature gating and user profiles
Profiles are created lazily: the first time a signed-in user is seen without
a users/{uid} document, a free one-year subscription is written for them.
Upgrades happen through the external billing flow, never here.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional

from loguru import logger

from directorio.clients.firestore_client import DocumentStore
from directorio.config import get_settings
from directorio.models import AuthUser, Subscription, SubscriptionType, UserProfile
from directorio.utils.timezone import ensure_utc, utc_now

settings = get_settings()

SUBSCRIPTION_FEATURES: dict[str, list[str]] = {
    SubscriptionType.FREE.value: [
        "Un negocio gratuito",
        "Listado básico",
        "Fotos básicas (2 fotos)",
        "Contacto por WhatsApp",
        "Reseñas básicas",
    ],
    SubscriptionType.PREMIUM.value: [
        "Hasta 3 negocios",
        "Listado destacado",
        "Más fotos (hasta 10)",
        "WhatsApp y redes sociales",
        "Reseñas con fotos",
        "Estadísticas básicas",
        "Ofertas especiales",
        "Pagos móviles",
        "Soporte prioritario",
    ],
    SubscriptionType.BUSINESS.value: [
        "Negocios ilimitados",
        "Listado premium con prioridad",
        "Fotos y videos ilimitados",
        "Todos los métodos de contacto",
        "Sistema completo de reseñas",
        "Estadísticas avanzadas",
        "Panel de administración",
        "Publicidad incluida",
        "Marketing por WhatsApp",
        "Pagos móviles y QR",
        "Soporte 24/7",
        "Capacitación empresarial",
    ],
}

PAYMENT_METHODS = {
    "cash": "Pago en efectivo",
    "mobileWallet": "Billetera móvil",
    "bankTransfer": "Transferencia bancaria",
    "creditCard": "Tarjeta de crédito",
}

# USD, as strings to avoid float formatting surprises in the UI
SUBSCRIPTION_PERIODS = {
    "monthly": {"free": "0", "premium": "4.99", "business": "14.99"},
    "quarterly": {"free": "0", "premium": "12.99", "business": "39.99"},
    "annual": {"free": "0", "premium": "39.99", "business": "149.99"},
}

# None = unlimited
MAX_BUSINESSES: dict[str, Optional[int]] = {
    SubscriptionType.FREE.value: 1,
    SubscriptionType.PREMIUM.value: 3,
    SubscriptionType.BUSINESS.value: None,
}


def default_subscription(now: Optional[datetime] = None) -> Subscription:
    now = now or utc_now()
    return Subscription(
        type=SubscriptionType.FREE,
        is_active=True,
        start_date=now,
        end_date=now + timedelta(days=settings.free_subscription_days),
        features=list(SUBSCRIPTION_FEATURES[SubscriptionType.FREE.value]),
    )


def is_active(profile: Optional[UserProfile], now: Optional[datetime] = None) -> bool:
    """Flagged active and not past its end date."""
    if profile is None or not profile.subscription.is_active:
        return False
    return ensure_utc(profile.subscription.end_date) > (now or utc_now())


def has_feature(profile: Optional[UserProfile], feature: str) -> bool:
    if not is_active(profile):
        return False
    return feature in profile.subscription.features


def max_businesses(profile: Optional[UserProfile]) -> Optional[int]:
    """0 when inactive, None when unlimited."""
    if not is_active(profile):
        return 0
    return MAX_BUSINESSES.get(profile.subscription.type, 0)


def can_create_business(profile: Optional[UserProfile], owned_count: int) -> bool:
    limit = max_businesses(profile)
    return limit is None or owned_count < limit


def max_images(profile: Optional[UserProfile]) -> Optional[int]:
    """Per listing. Inactive plans fall back to the free allowance."""
    if not is_active(profile):
        return settings.max_images_free
    sub_type = profile.subscription.type
    if sub_type == SubscriptionType.BUSINESS.value:
        return None
    if sub_type == SubscriptionType.PREMIUM.value:
        return settings.max_images_premium
    return settings.max_images_free


def plans() -> list[dict[str, Any]]:
    return [
        {
            "type": sub_type,
            "features": features,
            "maxBusinesses": MAX_BUSINESSES[sub_type],
            "prices": {period: prices[sub_type] for period, prices in SUBSCRIPTION_PERIODS.items()},
        }
        for sub_type, features in SUBSCRIPTION_FEATURES.items()
    ]


async def get_or_create_profile(store: DocumentStore, user: AuthUser) -> UserProfile:
    doc = await store.get(settings.users_collection, user.uid)
    if doc is not None:
        return UserProfile.from_document(doc.id, doc.data)

    now = utc_now()
    profile = UserProfile(
        id=user.uid,
        email=user.email or "",
        name=user.name or "",
        subscription=default_subscription(now),
        created_at=now,
        updated_at=now,
    )
    await store.set(settings.users_collection, user.uid, profile.to_document())
    logger.info(f"Created free profile for user {user.uid}.")
    return profile
