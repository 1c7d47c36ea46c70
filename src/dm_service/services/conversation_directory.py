from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import replace

from dm_service.application.exceptions import InvalidInputError
from dm_service.application.mappers import conversation as mapper
from dm_service.application.ports.clock import Clock, SystemClock
from dm_service.application.ports.profiles import ProfileDirectory
from dm_service.application.ports.store import DocumentStore
from dm_service.domain.entities.conversation import Conversation

logger = logging.getLogger(__name__)


class ConversationDirectory:
    """Resolves the conversation between two identities, creating it on first contact.

    The lookup runs against the caller's already-loaded conversations plus the
    ones this instance created itself. Two identities contacting each other for
    the first time at the same moment can still end up with two conversations.
    """

    def __init__(
        self,
        store: DocumentStore,
        profiles: ProfileDirectory,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._profiles = profiles
        self._clock = clock or SystemClock()
        self._created: dict[frozenset[str], Conversation] = {}
        self._pending: dict[frozenset[str], asyncio.Task[Conversation]] = {}

    async def ensure_conversation(
        self,
        self_id: str,
        other_id: str,
        loaded: Iterable[Conversation] = (),
    ) -> Conversation:
        if not self_id or not other_id:
            raise InvalidInputError("Both participants are required")
        if self_id == other_id:
            raise InvalidInputError("Cannot start a conversation with yourself")

        pair = frozenset((self_id, other_id))
        for conversation in loaded:
            if conversation.has_pair(self_id, other_id):
                return conversation

        created = self._created.get(pair)
        if created is not None:
            return created

        task = self._pending.get(pair)
        if task is None:
            task = asyncio.create_task(self._create(pair, other_id))
            self._pending[pair] = task
        return await asyncio.shield(task)

    async def _create(self, pair: frozenset[str], other_id: str) -> Conversation:
        try:
            await self._profiles.lookup(other_id)

            now = self._clock.now()
            conversation = Conversation(
                id="",
                participants=pair,
                created_at=now,
                updated_at=now,
                last_message_preview="",
            )
            conversation_id = await self._store.create(
                mapper.COLLECTION, mapper.entity_to_data(conversation),
            )
            conversation = replace(conversation, id=conversation_id)
            self._created[pair] = conversation
            logger.info("Created conversation %s for %s", conversation_id, sorted(pair))
            return conversation
        finally:
            self._pending.pop(pair, None)
