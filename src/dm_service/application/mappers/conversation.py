from __future__ import annotations

from typing import Any

from dm_service.application.dto.query import Document
from dm_service.domain.entities.conversation import Conversation

COLLECTION = "conversations"


def document_to_entity(doc: Document) -> Conversation:
    data = doc.data
    return Conversation(
        id=doc.id,
        participants=frozenset(data.get("participants") or ()),
        created_at=data["created_at"],
        updated_at=data["updated_at"],
        last_message_preview=data.get("last_message_preview") or "",
    )


def entity_to_data(entity: Conversation) -> dict[str, Any]:
    return {
        "participants": sorted(entity.participants),
        "created_at": entity.created_at,
        "updated_at": entity.updated_at,
        "last_message_preview": entity.last_message_preview,
    }
