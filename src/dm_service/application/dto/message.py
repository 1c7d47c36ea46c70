from __future__ import annotations

from dataclasses import dataclass

from dm_service.domain.entities.message import MediaRef
from dm_service.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class MessageBody:
    type: MessageType
    text: str = ""
    media: MediaRef | None = None

    @classmethod
    def of_text(cls, text: str) -> MessageBody:
        return cls(type=MessageType.TEXT, text=text)

    @classmethod
    def of_media(cls, media: MediaRef | None) -> MessageBody:
        return cls(type=MessageType.MEDIA, media=media)
