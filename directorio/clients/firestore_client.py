"""
directorio/clients/firestore_client.py — Cloud Firestore document store
Collection-scoped add / get / set / update / delete / query over the async
client. Every write can be conditioned on the version (update_time) read
earlier, which is how review writes avoid lost updates.
Google API errors are translated to the domain taxonomy here.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional, Protocol

from firebase_admin import firestore_async
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1 import FieldFilter, Query
from pydantic import BaseModel

from directorio.core import logging as app_logging
from directorio.core.errors import (
    NotFoundError,
    UpstreamUnavailableError,
    WriteConflictError,
)


class StoredDocument(BaseModel):
    id: str
    data: dict[str, Any]
    version: Optional[datetime] = None  # server update_time


class DocumentStore(Protocol):
    async def add(self, collection: str, data: dict[str, Any]) -> str: ...

    async def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]: ...

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    async def update(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expected_version: Optional[datetime] = None,
    ) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    async def query(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        start_after: Any = None,
        where_equals: Optional[dict[str, Any]] = None,
    ) -> list[StoredDocument]: ...


class FirestoreDocumentStore:
    def __init__(self, client: Any = None) -> None:
        self._db = client if client is not None else firestore_async.client()

    @asynccontextmanager
    async def _guard(
        self,
        collection: str,
        operation: str,
        doc_id: Optional[str] = None,
    ) -> AsyncIterator[None]:
        started = time.perf_counter()

        def _log(success: bool, error: Optional[str] = None) -> None:
            app_logging.log_store_operation(
                collection, operation, success,
                (time.perf_counter() - started) * 1000,
                document_id=doc_id, error=error,
            )

        try:
            yield
        except google_exceptions.FailedPrecondition as exc:
            _log(False, str(exc))
            raise WriteConflictError() from exc
        except google_exceptions.NotFound as exc:
            _log(False, str(exc))
            raise NotFoundError() from exc
        except (google_exceptions.GoogleAPIError, ConnectionError) as exc:
            _log(False, str(exc))
            raise UpstreamUnavailableError() from exc
        else:
            _log(True)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        async with self._guard(collection, "add"):
            _, ref = await self._db.collection(collection).add(data)
        return ref.id

    async def get(self, collection: str, doc_id: str) -> Optional[StoredDocument]:
        async with self._guard(collection, "get", doc_id):
            snap = await self._db.collection(collection).document(doc_id).get()
        if not snap.exists:
            return None
        return StoredDocument(id=snap.id, data=snap.to_dict() or {}, version=snap.update_time)

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        async with self._guard(collection, "set", doc_id):
            await self._db.collection(collection).document(doc_id).set(data)

    async def update(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expected_version: Optional[datetime] = None,
    ) -> None:
        option = None
        if expected_version is not None:
            option = self._db.write_option(last_update_time=expected_version)
        async with self._guard(collection, "update", doc_id):
            await self._db.collection(collection).document(doc_id).update(data, option=option)

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._guard(collection, "delete", doc_id):
            await self._db.collection(collection).document(doc_id).delete()

    async def query(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        start_after: Any = None,
        where_equals: Optional[dict[str, Any]] = None,
    ) -> list[StoredDocument]:
        q = self._db.collection(collection)
        for field, value in (where_equals or {}).items():
            q = q.where(filter=FieldFilter(field, "==", value))
        if order_by:
            direction = Query.DESCENDING if descending else Query.ASCENDING
            q = q.order_by(order_by, direction=direction)
            if start_after is not None:
                q = q.start_after({order_by: start_after})
        if limit:
            q = q.limit(limit)

        async with self._guard(collection, "query"):
            docs = [
                StoredDocument(id=d.id, data=d.to_dict() or {}, version=d.update_time)
                async for d in q.stream()
            ]
        return docs
