from __future__ import annotations

from typing import Any

from dm_service.application.dto.query import Document
from dm_service.domain.entities.message import MediaRef, Message, ReplySnapshot
from dm_service.domain.value_objects.enums import MessageType

COLLECTION = "messages"


def _media_from(raw: dict[str, Any] | None) -> MediaRef | None:
    if not raw:
        return None
    return MediaRef(url=raw.get("url", ""), title=raw.get("title", ""))


def _reply_from(raw: dict[str, Any] | None) -> ReplySnapshot | None:
    if not raw:
        return None
    return ReplySnapshot(
        id=raw["id"],
        sender_name=raw.get("sender_name", ""),
        content=raw.get("content", ""),
        type=MessageType(raw.get("type", MessageType.TEXT)),
    )


def document_to_entity(doc: Document) -> Message:
    data = doc.data
    return Message(
        id=doc.id,
        conversation_id=data["conversation_id"],
        sender_id=data["sender_id"],
        type=MessageType(data.get("type", MessageType.TEXT)),
        content=data.get("content") or "",
        created_at=data["created_at"],
        sender_name=data.get("sender_name") or "",
        sender_avatar_url=data.get("sender_avatar_url") or "",
        media=_media_from(data.get("media")),
        reply_to=_reply_from(data.get("reply_to")),
    )


def entity_to_data(entity: Message) -> dict[str, Any]:
    return {
        "conversation_id": entity.conversation_id,
        "sender_id": entity.sender_id,
        "sender_name": entity.sender_name,
        "sender_avatar_url": entity.sender_avatar_url,
        "type": entity.type.value,
        "content": entity.content,
        "media": (
            {"url": entity.media.url, "title": entity.media.title}
            if entity.media
            else None
        ),
        "created_at": entity.created_at,
        "reply_to": (
            {
                "id": entity.reply_to.id,
                "sender_name": entity.reply_to.sender_name,
                "content": entity.reply_to.content,
                "type": entity.reply_to.type.value,
            }
            if entity.reply_to
            else None
        ),
    }
