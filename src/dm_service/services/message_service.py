from __future__ import annotations

import logging
from dataclasses import replace
from urllib.parse import urlsplit

from dm_service.application.dto.message import MessageBody
from dm_service.application.exceptions import BusyError, InvalidInputError, PartialWriteFailure
from dm_service.application.mappers import conversation as conversation_mapper
from dm_service.application.mappers import message as message_mapper
from dm_service.application.ports.clock import Clock, SystemClock
from dm_service.application.ports.store import DocumentStore
from dm_service.config import settings
from dm_service.domain.entities.identity import Identity
from dm_service.domain.entities.message import MediaRef, Message, ReplySnapshot
from dm_service.domain.value_objects.enums import MessageType

logger = logging.getLogger(__name__)


def validate_body(body: MessageBody, max_length: int) -> tuple[str, MediaRef | None]:
    """Return the (content, media) pair to persist or raise InvalidInputError."""
    if body.type == MessageType.TEXT:
        text = (body.text or "").strip()
        if not text:
            raise InvalidInputError("Message text is empty")
        if len(text) > max_length:
            raise InvalidInputError(f"Message text exceeds {max_length} characters")
        return text, None

    if body.type == MessageType.MEDIA:
        media = body.media
        if media is None or not media.url:
            raise InvalidInputError("Media reference is missing")
        parts = urlsplit(media.url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise InvalidInputError("Media reference must be an http(s) URL")
        return "", MediaRef(url=media.url, title=(media.title or "").strip())

    raise InvalidInputError(f"Unsupported message type: {body.type}")


def build_preview(message: Message, max_length: int, media_placeholder: str) -> str:
    if message.type == MessageType.MEDIA:
        return media_placeholder
    text = message.content
    if len(text) <= max_length:
        return text
    return text[: max_length - 1].rstrip() + "…"


class ComposePipeline:
    """Validates and persists new messages, one in-flight send per conversation and sender.

    The message write and the conversation summary update are independent; a
    failed summary update is logged and never undoes the message.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Clock | None = None,
        *,
        max_length: int = settings.MESSAGE_MAX_LENGTH,
        preview_max_length: int = settings.PREVIEW_MAX_LENGTH,
        media_placeholder: str = settings.MEDIA_PREVIEW_PLACEHOLDER,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._max_length = max_length
        self._preview_max_length = preview_max_length
        self._media_placeholder = media_placeholder
        self._in_flight: set[tuple[str, str]] = set()

    def is_busy(self, conversation_id: str, sender_id: str) -> bool:
        return (conversation_id, sender_id) in self._in_flight

    async def send(
        self,
        conversation_id: str,
        sender: Identity,
        body: MessageBody,
        reply_to: ReplySnapshot | None = None,
    ) -> Message:
        if not conversation_id:
            raise InvalidInputError("Conversation is required")
        content, media = validate_body(body, self._max_length)

        key = (conversation_id, sender.id)
        if key in self._in_flight:
            raise BusyError("A message is already being sent to this conversation")
        self._in_flight.add(key)
        try:
            message = Message(
                id="",
                conversation_id=conversation_id,
                sender_id=sender.id,
                type=body.type,
                content=content,
                created_at=self._clock.now(),
                sender_name=sender.display_name,
                sender_avatar_url=sender.avatar_url,
                media=media,
                reply_to=reply_to,
            )
            message_id = await self._store.create(
                message_mapper.COLLECTION, message_mapper.entity_to_data(message),
            )
            message = replace(message, id=message_id)

            try:
                await self._touch_conversation(message)
            except PartialWriteFailure as exc:
                logger.warning(
                    "Message %s stored but %s", message.id, exc.detail,
                    exc_info=exc.__cause__,
                )
            return message
        finally:
            self._in_flight.discard(key)

    async def _touch_conversation(self, message: Message) -> None:
        fields = {
            "updated_at": message.created_at,
            "last_message_preview": build_preview(
                message, self._preview_max_length, self._media_placeholder,
            ),
        }
        try:
            applied = await self._store.update(
                conversation_mapper.COLLECTION,
                message.conversation_id,
                fields,
                guard="updated_at",
            )
        except Exception as exc:
            raise PartialWriteFailure(
                f"summary of conversation {message.conversation_id} was not updated"
            ) from exc
        if not applied:
            logger.debug(
                "Conversation %s already shows a newer message than %s",
                message.conversation_id, message.id,
            )
