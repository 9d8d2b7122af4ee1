"""
directorio/models.py — All Pydantic data schemas
Persisted documents (businesses/{id}, users/{id}) use camelCase field names;
attributes are snake_case. These models are the validation boundary between
Firestore's loosely-typed documents and the services.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from directorio.utils.timezone import utc_now


class CamelModel(BaseModel):
    """Reads camelCase or snake_case, dumps camelCase with by_alias=True."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ──────────────────────────────────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────────────────────────────────

class SubscriptionType(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    BUSINESS = "business"


class RouteCategory(str, Enum):
    AUTH = "auth"
    BUSINESS = "business"
    SEARCH = "search"
    REVIEW = "review"


# ──────────────────────────────────────────────────────────────────────────────
# Business listing
# ──────────────────────────────────────────────────────────────────────────────

class Location(CamelModel):
    is_national: bool = False
    province: Optional[str] = None
    city: Optional[str] = None

    def to_document(self) -> dict[str, Any]:
        if self.is_national:
            return {"isNational": True}
        return {"isNational": False, "province": self.province, "city": self.city}


class ContactInfo(CamelModel):
    whatsapp: str = ""
    email: Optional[str] = None
    instagram: Optional[str] = None


class OwnerResponse(CamelModel):
    text: str
    created_at: datetime = Field(default_factory=utc_now)


class ReviewFlags(CamelModel):
    count: int = 0
    reasons: list[str] = []


class Review(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    rating: int = Field(ge=1, le=5)
    tags: list[str] = []
    created_at: datetime = Field(default_factory=utc_now)
    owner_response: Optional[OwnerResponse] = None
    flags: Optional[ReviewFlags] = None

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, v: Any) -> list:
        # Old documents carry tags as null or a bare string
        if not isinstance(v, list):
            return []
        return [t for t in v if isinstance(t, str)]

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Business(CamelModel):
    id: str = ""
    name: str
    description: str = ""
    category: str = ""
    location: Location = Field(default_factory=Location)
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    images: list[str] = []
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    reviews: list[Review] = []
    # Early listings were written with userId
    owner_id: str = Field(
        default="",
        alias="ownerId",
        validation_alias=AliasChoices("ownerId", "owner_id", "userId"),
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "Business":
        return cls.model_validate({**data, "id": doc_id})

    def to_document(self) -> dict[str, Any]:
        """Firestore payload; the id lives in the document path."""
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "location": self.location.to_document(),
            "contactInfo": self.contact_info.model_dump(by_alias=True, exclude_none=True),
            "images": list(self.images),
            "rating": self.rating,
            "reviews": [r.to_document() for r in self.reviews],
            "ownerId": self.owner_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


# ──────────────────────────────────────────────────────────────────────────────
# User profile / subscription
# ──────────────────────────────────────────────────────────────────────────────

class Subscription(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )

    type: SubscriptionType = SubscriptionType.FREE
    is_active: bool = True
    start_date: datetime = Field(default_factory=utc_now)
    end_date: datetime = Field(default_factory=utc_now)
    features: list[str] = []


class UserProfile(CamelModel):
    id: str
    email: str = ""
    name: str = ""
    subscription: Subscription = Field(default_factory=Subscription)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "UserProfile":
        return cls.model_validate({**data, "id": doc_id})

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"})


# ──────────────────────────────────────────────────────────────────────────────
# Auth
# ──────────────────────────────────────────────────────────────────────────────

class AuthUser(CamelModel):
    """The signed-in user as seen by route handlers."""
    uid: str
    email: Optional[str] = None
    name: Optional[str] = None
    email_verified: bool = False


class AuthSession(CamelModel):
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    id_token: str
    refresh_token: str
    expires_in: int = 3600
    email_verified: bool = False


# ──────────────────────────────────────────────────────────────────────────────
# Search
# ──────────────────────────────────────────────────────────────────────────────

class SearchFilters(CamelModel):
    category: Optional[str] = None
    province: Optional[str] = None
    city: Optional[str] = None


class SearchPage(CamelModel):
    items: list[Business] = []
    # createdAt of the last item; best-effort when a term was given
    next_cursor: Optional[datetime] = None


# ──────────────────────────────────────────────────────────────────────────────
# API Request / Response models
# ──────────────────────────────────────────────────────────────────────────────

class BusinessCreateRequest(CamelModel):
    name: str
    description: str
    category: str
    location: Location
    contact_info: ContactInfo


class BusinessUpdateRequest(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    location: Optional[Location] = None
    contact_info: Optional[ContactInfo] = None
    images: Optional[list[str]] = None  # reorder / drop; new files go through upload


class ImageDeleteRequest(CamelModel):
    url: str


class ReviewCreateRequest(CamelModel):
    rating: int = Field(ge=1, le=5)
    tags: list[str] = []


class FlagReviewRequest(CamelModel):
    reason: str = Field(min_length=1, max_length=500)


class OwnerResponseRequest(CamelModel):
    text: str = Field(min_length=1, max_length=1000)


class SignUpRequest(CamelModel):
    email: str
    password: str = Field(min_length=6)
    name: str = ""


class SignInRequest(CamelModel):
    email: str
    password: str


class ProviderSignInRequest(CamelModel):
    """An OAuth id token obtained client-side from the provider (Google)."""
    id_token: str
    provider_id: str = "google.com"


class VerificationEmailRequest(CamelModel):
    id_token: str
