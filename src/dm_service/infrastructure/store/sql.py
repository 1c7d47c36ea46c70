"""Postgres-backed DocumentStore with live queries driven by a Redis change feed.

Every committed write is applied to this process's live queries directly and
published on the change channel for the other processes. A live query re-runs
its SELECT whenever a matching change arrives; re-runs of one subscription go
through a single runner task, so its snapshots are delivered in order and
bursts of changes collapse into one refresh.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dm_service.application.dto.query import Change, Document, LiveQuery
from dm_service.application.exceptions import SubscriptionError
from dm_service.application.ports.bus import EventPublisher
from dm_service.application.ports.store import ErrorCallback, SnapshotCallback
from dm_service.infrastructure.bus.serializer import change_payload
from dm_service.infrastructure.db.uow import SqlAlchemyUoW

logger = logging.getLogger(__name__)


class SqlSubscription:
    def __init__(
        self,
        store: SqlDocumentStore,
        query: LiveQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> None:
        self.query = query
        self._store = store
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._dirty = False
        self._runner: asyncio.Task[None] | None = None
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._store._detach(self)
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()

    def refresh(self) -> None:
        if self.cancelled:
            return
        self._dirty = True
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(
                self._run(), name=f"live-query-{self.query.collection}",
            )

    async def _run(self) -> None:
        while self._dirty and not self.cancelled:
            self._dirty = False
            try:
                docs = await self._store.fetch(self.query)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Live query on %s failed: %s", self.query.collection, exc)
                if not self.cancelled:
                    self._on_error(SubscriptionError(str(exc)))
                # A refresh requested during the failed fetch still runs.
                continue
            if self.cancelled:
                return
            try:
                self._on_snapshot(docs)
            except Exception:
                logger.exception("Snapshot listener failed for %s", self.query.collection)


class SqlDocumentStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: EventPublisher,
        channel: str,
    ) -> None:
        self._session_factory = session_factory
        self._publisher = publisher
        self._channel = channel
        self._origin = uuid.uuid4().hex
        self._subscriptions: list[SqlSubscription] = []

    def subscribe(
        self,
        query: LiveQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> SqlSubscription:
        subscription = SqlSubscription(self, query, on_snapshot, on_error)
        self._subscriptions.append(subscription)
        subscription.refresh()
        return subscription

    async def fetch(self, query: LiveQuery) -> list[Document]:
        async with self._session_factory() as session:
            return await SqlAlchemyUoW(session).documents.run_query(query)

    async def create(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        async with self._session_factory() as session, SqlAlchemyUoW(session) as uow:
            doc = await uow.documents.insert(collection, doc_id, data)
            await uow.commit()
        await self._changed(Change(collection=collection, doc_id=doc.id, data=doc.data))
        return doc_id

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
        *,
        guard: str | None = None,
    ) -> bool:
        async with self._session_factory() as session, SqlAlchemyUoW(session) as uow:
            doc = await uow.documents.update(collection, doc_id, fields, guard)
            await uow.commit()
        if doc is None:
            return False
        await self._changed(Change(collection=collection, doc_id=doc.id, data=doc.data))
        return True

    async def _changed(self, change: Change) -> None:
        self._refresh_matching(change)
        try:
            await self._publisher.publish(self._channel, change_payload(change, self._origin))
        except Exception:
            # The write is committed; other processes catch up on their next resync.
            logger.exception("Failed to publish change %s/%s", change.collection, change.doc_id)

    def on_feed_change(self, change: Change, origin: str) -> None:
        """Change received from the feed. Our own writes were applied when made."""
        if origin == self._origin:
            return
        self._refresh_matching(change)

    def _refresh_matching(self, change: Change) -> None:
        for subscription in list(self._subscriptions):
            query = subscription.query
            if query.collection == change.collection and query.matches(change.data):
                subscription.refresh()

    def resync(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.refresh()

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.cancel()

    def _detach(self, subscription: SqlSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
