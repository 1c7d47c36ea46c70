from __future__ import annotations

import logging
from typing import Callable

from dm_service.application.dto.query import Document, Filter, LiveQuery, OrderBy
from dm_service.application.dto.sync import SyncState
from dm_service.application.exceptions import SubscriptionError
from dm_service.application.mappers import conversation as mapper
from dm_service.application.ports.store import DocumentStore, Subscription
from dm_service.domain.entities.conversation import Conversation

logger = logging.getLogger(__name__)

OnConversations = Callable[[SyncState[Conversation]], None]


def conversations_query(self_id: str) -> LiveQuery:
    return LiveQuery(
        collection=mapper.COLLECTION,
        filters=(Filter("participants", "array_contains", self_id),),
        order_by=OrderBy("updated_at", descending=True),
    )


def _ordered(docs: list[Document]) -> tuple[Conversation, ...]:
    by_id: dict[str, Conversation] = {}
    for doc in docs:
        try:
            by_id[doc.id] = mapper.document_to_entity(doc)
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed conversation document %s", doc.id)
    ordered = sorted(by_id.values(), key=lambda c: c.id)
    ordered.sort(key=lambda c: c.updated_at, reverse=True)
    return tuple(ordered)


class ConversationListSync:
    """Keeps the caller's conversations, most recent activity first.

    Every snapshot replaces the local list wholesale. A failing subscription
    keeps the last list it delivered and reports the error alongside it.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._subscription: Subscription | None = None
        self._generation = 0
        self._items: tuple[Conversation, ...] = ()

    @property
    def conversations(self) -> tuple[Conversation, ...]:
        return self._items

    @property
    def active(self) -> bool:
        return self._subscription is not None

    def subscribe(self, self_id: str, on_update: OnConversations) -> Callable[[], None]:
        self.cancel()
        self._generation += 1
        generation = self._generation

        def _on_snapshot(docs: list[Document]) -> None:
            if generation != self._generation:
                logger.debug("Dropping conversation snapshot after cancel")
                return
            self._items = _ordered(docs)
            on_update(SyncState(items=self._items))

        def _on_error(exc: Exception) -> None:
            if generation != self._generation:
                return
            error = exc if isinstance(exc, SubscriptionError) else SubscriptionError(str(exc))
            logger.warning("Conversation list subscription failed for %s: %s", self_id, error.detail)
            on_update(SyncState(items=self._items, error=error))

        self._subscription = self._store.subscribe(
            conversations_query(self_id), _on_snapshot, _on_error,
        )

        def cancel() -> None:
            if generation == self._generation:
                self.cancel()

        return cancel

    def cancel(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is None:
            return
        self._generation += 1
        subscription.cancel()
