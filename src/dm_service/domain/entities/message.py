from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from dm_service.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class MediaRef:
    url: str
    title: str = ""


@dataclass(frozen=True, slots=True)
class ReplySnapshot:
    """Copy of the replied-to message taken when the reply started."""

    id: str
    sender_name: str
    content: str
    type: MessageType


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    conversation_id: str
    sender_id: str
    type: MessageType
    content: str
    created_at: datetime
    sender_name: str = ""
    sender_avatar_url: str = ""
    media: MediaRef | None = None
    reply_to: ReplySnapshot | None = None

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.created_at, self.id)

    def to_reply_snapshot(self) -> ReplySnapshot:
        return ReplySnapshot(
            id=self.id,
            sender_name=self.sender_name,
            content=self.content,
            type=self.type,
        )
