"""
tests/conftest.py — Shared pytest fixtures and in-memory collaborators
No test touches Firebase, Redis or the network.
"""
from __future__ import annotations

import asyncio
import copy
import itertools
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

import pytest

from directorio.clients.firestore_client import StoredDocument
from directorio.core.errors import NotFoundError, UpstreamUnavailableError, WriteConflictError
from directorio.models import AuthSession, AuthUser, Review, UserProfile
from directorio.services.subscriptions import default_subscription
from directorio.utils.timezone import UTC

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
OWNER_ID = "owner-1"


# ──────────────────────────────────────────────────────────────────────────────
# Fakes
# ──────────────────────────────────────────────────────────────────────────────

class FakeDocumentStore:
    """Firestore stand-in with update_time style versions."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.versions: dict[tuple[str, str], datetime] = {}
        self.conflicts_to_raise = 0
        self.conditional_writes = 0
        self._clock = itertools.count(1)

    def _bump(self, collection: str, doc_id: str) -> None:
        self.versions[(collection, doc_id)] = BASE_TIME + timedelta(microseconds=next(self._clock))

    def seed(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self.collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        self._bump(collection, doc_id)

    def raw(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        return self.collections.get(collection, {}).get(doc_id)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self.seed(collection, doc_id, data)
        return doc_id

    async def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        data = self.raw(collection, doc_id)
        if data is None:
            return None
        snapshot = StoredDocument(
            id=doc_id, data=copy.deepcopy(data), version=self.versions[(collection, doc_id)],
        )
        # Network round-trip: lets concurrent callers read the same version
        await asyncio.sleep(0)
        return snapshot

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self.seed(collection, doc_id, data)

    async def update(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expected_version: Optional[datetime] = None,
    ) -> None:
        current = self.raw(collection, doc_id)
        if current is None:
            raise NotFoundError()
        if expected_version is not None:
            self.conditional_writes += 1
            if self.conflicts_to_raise > 0:
                self.conflicts_to_raise -= 1
                self._bump(collection, doc_id)
                raise WriteConflictError()
            if expected_version != self.versions[(collection, doc_id)]:
                raise WriteConflictError()
        current.update(copy.deepcopy(data))
        self._bump(collection, doc_id)

    async def delete(self, collection: str, doc_id: str) -> None:
        self.collections.get(collection, {}).pop(doc_id, None)
        self.versions.pop((collection, doc_id), None)

    async def query(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        start_after: Any = None,
        where_equals: Optional[dict[str, Any]] = None,
    ) -> list[StoredDocument]:
        docs = [
            StoredDocument(id=doc_id, data=copy.deepcopy(data), version=self.versions[(collection, doc_id)])
            for doc_id, data in self.collections.get(collection, {}).items()
            if all(data.get(k) == v for k, v in (where_equals or {}).items())
        ]
        if order_by:
            docs.sort(key=lambda d: d.data[order_by], reverse=descending)
            if start_after is not None:
                docs = [
                    d for d in docs
                    if (d.data[order_by] < start_after if descending else d.data[order_by] > start_after)
                ]
        if limit is not None:
            docs = docs[:limit]
        return docs


class FakeKeyValueStore:
    def __init__(self, fail: bool = False) -> None:
        self.data: dict[str, dict[str, Any]] = {}
        self.ttls: dict[str, int] = {}
        self.fail = fail

    async def get_json(self, key: str) -> Optional[dict[str, Any]]:
        if self.fail:
            raise ConnectionError("redis down")
        value = self.data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set_json(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        if self.fail:
            raise ConnectionError("redis down")
        self.data[key] = copy.deepcopy(value)
        self.ttls[key] = ttl_seconds


class FakeImageStorage:
    def __init__(self, fail_after: Optional[int] = None) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_after = fail_after  # uploads allowed before the next one fails
        self.error: Exception = UpstreamUnavailableError("Error al subir el archivo.")

    async def upload(self, content: bytes, path: str, content_type: str, on_progress=None) -> str:
        if self.fail_after is not None and len(self.objects) >= self.fail_after:
            raise self.error
        if on_progress is not None:
            on_progress(50.0)
            on_progress(100.0)
        url = f"https://storage.test/{path}"
        self.objects[url] = content
        return url

    async def delete(self, url: str) -> None:
        self.deleted.append(url)
        self.objects.pop(url, None)


class FakeIdentityProvider:
    def __init__(self) -> None:
        self.tokens: dict[str, AuthUser] = {}
        self.signed_out: list[str] = []
        self.verification_emails: list[str] = []

    def issue(self, uid: str, email: Optional[str] = None, name: Optional[str] = None) -> str:
        token = f"token-{uid}"
        self.tokens[token] = AuthUser(uid=uid, email=email or f"{uid}@example.com", name=name)
        return token

    def _session(self, uid: str, email: str, name: str = "") -> AuthSession:
        token = self.issue(uid, email, name or None)
        return AuthSession(
            uid=uid, email=email, display_name=name or None,
            id_token=token, refresh_token=f"refresh-{uid}",
        )

    async def sign_up(self, email: str, password: str, name: str = "") -> AuthSession:
        return self._session(f"uid-{email.split('@')[0]}", email, name)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        return self._session(f"uid-{email.split('@')[0]}", email)

    async def sign_in_with_provider(self, provider_id_token: str, provider_id: str = "google.com") -> AuthSession:
        return self._session("uid-google", "google@example.com", "Usuario Google")

    async def send_verification_email(self, id_token: str) -> None:
        self.verification_emails.append(id_token)

    async def sign_out(self, uid: str) -> None:
        self.signed_out.append(uid)
        self.tokens = {t: u for t, u in self.tokens.items() if u.uid != uid}

    async def verify_id_token(self, id_token: str) -> Optional[AuthUser]:
        return self.tokens.get(id_token)


# ──────────────────────────────────────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def kv_store() -> FakeKeyValueStore:
    return FakeKeyValueStore()


@pytest.fixture
def image_storage() -> FakeImageStorage:
    return FakeImageStorage()


@pytest.fixture
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def make_business():
    """Factory for raw business documents (as Firestore returns them)."""

    def _make(
        name: str = "Pizzería Napoli",
        description: str = "Pizza artesanal al horno de leña",
        category: str = "Alimentos y Bebidas",
        province: Optional[str] = "Pichincha",
        city: Optional[str] = "Quito",
        national: bool = False,
        owner_id: str = OWNER_ID,
        ratings: tuple[int, ...] = (),
        created_minutes: int = 0,
        images: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        created = BASE_TIME + timedelta(minutes=created_minutes)
        reviews = [
            Review(
                user_id=f"reviewer-{i}", rating=r, tags=["Calidad"], created_at=created,
            ).to_document()
            for i, r in enumerate(ratings)
        ]
        location = {"isNational": True} if national else {
            "isNational": False, "province": province, "city": city,
        }
        rating = round(sum(ratings) / len(ratings), 1) if ratings else 0
        return {
            "name": name,
            "description": description,
            "category": category,
            "location": location,
            "contactInfo": {"whatsapp": "0991234567"},
            "images": images if images is not None else ["https://storage.test/businesses/x/1_a.jpg"],
            "rating": rating,
            "reviews": reviews,
            "ownerId": owner_id,
            "createdAt": created,
            "updatedAt": created,
        }

    return _make


@pytest.fixture
def free_profile() -> UserProfile:
    return UserProfile(
        id=OWNER_ID,
        email="owner@example.com",
        name="Dueño",
        subscription=default_subscription(),
    )
