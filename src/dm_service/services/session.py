"""One signed-in identity's messaging session.

Owns the conversation list, the followed conversation, the reply state and the
compose pipeline, and reports every change to a SessionListener.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Protocol

from dm_service.application.dto.message import MessageBody
from dm_service.application.dto.sync import SyncState
from dm_service.application.exceptions import InvalidInputError, NotFoundError
from dm_service.application.ports.clock import Clock
from dm_service.application.ports.profiles import ProfileDirectory
from dm_service.application.ports.store import DocumentStore
from dm_service.config import settings
from dm_service.domain.entities.conversation import Conversation
from dm_service.domain.entities.identity import Identity, Profile
from dm_service.domain.entities.message import MediaRef, Message, ReplySnapshot
from dm_service.domain.value_objects.enums import ReplyState
from dm_service.services.conversation_directory import ConversationDirectory
from dm_service.services.conversation_list_sync import ConversationListSync
from dm_service.services.message_service import ComposePipeline
from dm_service.services.message_stream_sync import MessageStreamSync
from dm_service.services.reply_context import ReplyContext

logger = logging.getLogger(__name__)


class SessionListener(Protocol):
    def on_conversations(self, state: SyncState[Conversation]) -> None: ...

    def on_messages(self, conversation_id: str, state: SyncState[Message]) -> None: ...

    def on_counterpart(self, conversation_id: str, profile: Profile) -> None: ...

    def on_reply_changed(self, snapshot: ReplySnapshot | None) -> None: ...


async def resolve_identity(
    identity: Identity,
    profiles: ProfileDirectory,
    placeholder: str = settings.UNKNOWN_SENDER_NAME,
) -> Identity:
    """Fill a missing display name from the profile directory, else the placeholder."""
    if identity.display_name:
        return identity
    try:
        profile = await profiles.lookup(identity.id)
    except NotFoundError:
        return replace(identity, display_name=placeholder)
    return replace(
        identity,
        display_name=profile.display_name or placeholder,
        avatar_url=identity.avatar_url or profile.avatar_url,
    )


class MessagingSession:
    def __init__(
        self,
        identity: Identity,
        store: DocumentStore,
        profiles: ProfileDirectory,
        listener: SessionListener,
        *,
        compose: ComposePipeline | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.identity = identity
        self._listener = listener
        self._directory = ConversationDirectory(store, profiles, clock)
        self._list = ConversationListSync(store)
        self._stream = MessageStreamSync(store, profiles)
        self._compose = compose or ComposePipeline(store, clock)
        self._reply = ReplyContext()
        self._opened: dict[str, Conversation] = {}
        self._closed = False

    @property
    def conversations(self) -> tuple[Conversation, ...]:
        return self._list.conversations

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._stream.messages

    @property
    def selected_id(self) -> str | None:
        return self._stream.selected_id

    @property
    def reply_state(self) -> ReplyState:
        return self._reply.state

    @property
    def reply_snapshot(self) -> ReplySnapshot | None:
        return self._reply.snapshot

    def start(self) -> None:
        """Open (or reopen, for a manual retry) the conversation list subscription."""
        if self._closed:
            raise InvalidInputError("Session is closed")
        self._list.subscribe(self.identity.id, self._listener.on_conversations)

    async def open_or_create_conversation(self, other_id: str) -> str:
        conversation = await self._directory.ensure_conversation(
            self.identity.id, other_id, self._list.conversations,
        )
        self._opened[conversation.id] = conversation
        if not self._closed:
            self.select_conversation(conversation)
        return conversation.id

    def _resolve(self, conversation_id: str) -> Conversation:
        for conversation in self._list.conversations:
            if conversation.id == conversation_id:
                return conversation
        conversation = self._opened.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        return conversation

    def select_conversation(self, conversation: Conversation | str) -> None:
        if self._closed:
            raise InvalidInputError("Session is closed")
        if isinstance(conversation, str):
            conversation = self._resolve(conversation)
        if self.identity.id not in conversation.participants:
            raise NotFoundError("Conversation not found")

        self._clear_reply()
        conversation_id = conversation.id

        def _on_messages(state: SyncState[Message]) -> None:
            self._listener.on_messages(conversation_id, state)

        def _on_counterpart(profile: Profile) -> None:
            self._listener.on_counterpart(conversation_id, profile)

        self._stream.select(conversation, self.identity.id, _on_messages, _on_counterpart)
        logger.debug("%s selected conversation %s", self.identity.id, conversation_id)

    def leave_conversation(self) -> None:
        self._clear_reply()
        self._stream.cancel()

    def begin_reply(self, message_id: str) -> ReplySnapshot:
        message = self._stream.find(message_id)
        if message is None:
            raise NotFoundError("Message not found in the current conversation")
        snapshot = self._reply.begin_reply(message)
        self._listener.on_reply_changed(snapshot)
        return snapshot

    def dismiss_reply(self) -> None:
        self._clear_reply()

    def _clear_reply(self) -> None:
        if self._reply.state == ReplyState.REPLYING:
            self._reply.reset()
            self._listener.on_reply_changed(None)

    async def send_text(self, text: str) -> Message:
        return await self._send(MessageBody.of_text(text))

    async def send_media(self, media: MediaRef | None) -> Message:
        return await self._send(MessageBody.of_media(media))

    async def _send(self, body: MessageBody) -> Message:
        conversation_id = self._stream.selected_id
        if conversation_id is None:
            raise InvalidInputError("No conversation selected")

        snapshot = self._reply.snapshot
        message = await self._compose.send(conversation_id, self.identity, body, snapshot)

        # Only clear the reply this send carried; the user may have moved on meanwhile.
        if snapshot is not None and self._reply.snapshot is snapshot:
            self._reply.complete()
            self._listener.on_reply_changed(None)
        return message

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stream.cancel()
        self._list.cancel()
        self._reply.reset()
        logger.debug("Messaging session for %s closed", self.identity.id)
