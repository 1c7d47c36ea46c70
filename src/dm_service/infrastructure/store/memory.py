"""In-process DocumentStore with live queries.

Used for local development and tests. Snapshots are queued on the event loop
with ``call_soon`` instead of being delivered inside the write, so listeners
observe the same asynchronous round-trip a remote store would give them, and
each subscription sees its snapshots in write order.
"""
from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from typing import Any

from dm_service.application.dto.query import Document, LiveQuery
from dm_service.application.exceptions import NotFoundError, SubscriptionError
from dm_service.application.ports.store import ErrorCallback, SnapshotCallback

logger = logging.getLogger(__name__)


class MemorySubscription:
    def __init__(
        self,
        store: InMemoryDocumentStore,
        query: LiveQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.query = query
        self._store = store
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._loop = loop
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._store._detach(self)

    def push(self, docs: list[Document]) -> None:
        self._loop.call_soon(self._deliver, docs)

    def fail(self, exc: Exception) -> None:
        self._loop.call_soon(self._deliver_error, exc)

    def _deliver(self, docs: list[Document]) -> None:
        if self.cancelled:
            return
        try:
            self._on_snapshot(docs)
        except Exception:
            logger.exception("Snapshot listener failed for %s", self.query.collection)

    def _deliver_error(self, exc: Exception) -> None:
        if self.cancelled:
            return
        try:
            self._on_error(exc)
        except Exception:
            logger.exception("Error listener failed for %s", self.query.collection)


class InMemoryDocumentStore:
    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._subscriptions: list[MemorySubscription] = []

    def subscribe(
        self,
        query: LiveQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> MemorySubscription:
        subscription = MemorySubscription(
            self, query, on_snapshot, on_error, asyncio.get_running_loop(),
        )
        self._subscriptions.append(subscription)
        subscription.push(self._snapshot(query))
        return subscription

    async def create(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        stored = copy.deepcopy(data)
        self._collections.setdefault(collection, {})[doc_id] = stored
        self._notify(collection, None, stored)
        return doc_id

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
        *,
        guard: str | None = None,
    ) -> bool:
        docs = self._collections.get(collection, {})
        before = docs.get(doc_id)
        if before is None:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        if guard is not None:
            stored = before.get(guard)
            if stored is not None and stored > fields[guard]:
                return False
        after = {**before, **copy.deepcopy(fields)}
        docs[doc_id] = after
        self._notify(collection, before, after)
        return True

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        data = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def documents(self, collection: str) -> list[Document]:
        return [
            Document(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collections.get(collection, {}).items()
        ]

    def fail_subscriptions(self, collection: str, detail: str = "unavailable") -> None:
        """Report a transport failure to every live query on a collection."""
        for subscription in list(self._subscriptions):
            if subscription.query.collection == collection:
                subscription.fail(SubscriptionError(detail))

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.cancel()

    def _detach(self, subscription: MemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def _snapshot(self, query: LiveQuery) -> list[Document]:
        docs = [
            Document(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collections.get(query.collection, {}).items()
            if query.matches(data)
        ]
        return query.sort(docs)

    def _notify(
        self,
        collection: str,
        before: dict[str, Any] | None,
        after: dict[str, Any],
    ) -> None:
        for subscription in list(self._subscriptions):
            query = subscription.query
            if query.collection != collection:
                continue
            if query.matches(after) or (before is not None and query.matches(before)):
                subscription.push(self._snapshot(query))
