from __future__ import annotations

import asyncio
import logging
from typing import Callable

from dm_service.application.dto.query import Document, Filter, LiveQuery, OrderBy
from dm_service.application.dto.sync import SyncState
from dm_service.application.exceptions import SubscriptionError
from dm_service.application.mappers import message as mapper
from dm_service.application.ports.profiles import ProfileDirectory
from dm_service.application.ports.store import DocumentStore, Subscription
from dm_service.domain.entities.conversation import Conversation
from dm_service.domain.entities.identity import Profile
from dm_service.domain.entities.message import Message

logger = logging.getLogger(__name__)

OnMessages = Callable[[SyncState[Message]], None]
OnCounterpart = Callable[[Profile], None]


def messages_query(conversation_id: str) -> LiveQuery:
    return LiveQuery(
        collection=mapper.COLLECTION,
        filters=(Filter("conversation_id", "==", conversation_id),),
        order_by=OrderBy("created_at"),
    )


def _ordered(docs: list[Document], conversation_id: str) -> tuple[Message, ...]:
    by_id: dict[str, Message] = {}
    for doc in docs:
        try:
            message = mapper.document_to_entity(doc)
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed message document %s", doc.id)
            continue
        if message.conversation_id != conversation_id:
            continue
        by_id[message.id] = message
    return tuple(sorted(by_id.values(), key=lambda m: m.sort_key))


class MessageStreamSync:
    """Live, ordered message list of the selected conversation.

    Only one conversation is followed at a time. Every (re)subscription bumps a
    generation counter, and callbacks compare both the conversation id and the
    generation they were opened with, so a snapshot that arrives for a
    conversation the user already left is dropped.
    """

    def __init__(self, store: DocumentStore, profiles: ProfileDirectory | None = None) -> None:
        self._store = store
        self._profiles = profiles
        self._subscription: Subscription | None = None
        self._lookup: asyncio.Task[None] | None = None
        self._selected_id: str | None = None
        self._generation = 0
        self._items: tuple[Message, ...] = ()

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._items

    def find(self, message_id: str) -> Message | None:
        for message in self._items:
            if message.id == message_id:
                return message
        return None

    def _is_current(self, conversation_id: str, generation: int) -> bool:
        return conversation_id == self._selected_id and generation == self._generation

    def subscribe(self, conversation_id: str, on_update: OnMessages) -> Callable[[], None]:
        self.cancel()
        self._generation += 1
        generation = self._generation
        self._selected_id = conversation_id
        self._items = ()

        def _on_snapshot(docs: list[Document]) -> None:
            if not self._is_current(conversation_id, generation):
                logger.debug("Discarding stale message snapshot for %s", conversation_id)
                return
            self._items = _ordered(docs, conversation_id)
            on_update(SyncState(items=self._items))

        def _on_error(exc: Exception) -> None:
            if not self._is_current(conversation_id, generation):
                return
            error = exc if isinstance(exc, SubscriptionError) else SubscriptionError(str(exc))
            logger.warning("Message subscription failed for %s: %s", conversation_id, error.detail)
            on_update(SyncState(items=self._items, error=error))

        self._subscription = self._store.subscribe(
            messages_query(conversation_id), _on_snapshot, _on_error,
        )

        def cancel() -> None:
            if self._is_current(conversation_id, generation):
                self.cancel()

        return cancel

    def select(
        self,
        conversation: Conversation,
        self_id: str,
        on_update: OnMessages,
        on_counterpart: OnCounterpart | None = None,
    ) -> Callable[[], None]:
        """Follow a conversation and fetch the other participant's profile once."""
        cancel = self.subscribe(conversation.id, on_update)
        other_id = conversation.counterpart_of(self_id)
        if other_id and self._profiles is not None and on_counterpart is not None:
            self._lookup = asyncio.create_task(
                self._lookup_counterpart(conversation.id, self._generation, other_id, on_counterpart),
                name=f"counterpart-lookup-{conversation.id}",
            )
        return cancel

    async def _lookup_counterpart(
        self,
        conversation_id: str,
        generation: int,
        other_id: str,
        on_counterpart: OnCounterpart,
    ) -> None:
        assert self._profiles is not None
        try:
            profile = await self._profiles.lookup(other_id)
        except Exception:
            logger.warning("Counterpart lookup failed for %s", other_id, exc_info=True)
            return
        if self._is_current(conversation_id, generation):
            on_counterpart(profile)

    def cancel(self) -> None:
        subscription, self._subscription = self._subscription, None
        lookup, self._lookup = self._lookup, None
        if lookup is not None and not lookup.done():
            lookup.cancel()
        if subscription is None:
            return
        self._generation += 1
        self._selected_id = None
        self._items = ()
        subscription.cancel()
