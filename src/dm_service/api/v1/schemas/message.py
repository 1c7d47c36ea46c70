from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from dm_service.domain.value_objects.enums import MessageType


class MediaSchema(BaseModel):
    url: str
    title: str = ""

    model_config = {"from_attributes": True}


class ReplySnapshotResponse(BaseModel):
    id: str
    sender_name: str
    content: str
    type: MessageType

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    sender_name: str
    sender_avatar_url: str
    type: MessageType
    content: str
    media: MediaSchema | None
    reply_to: ReplySnapshotResponse | None
    created_at: datetime

    model_config = {"from_attributes": True}


class SendMessageRequest(BaseModel):
    type: MessageType = MessageType.TEXT
    body: str | None = None
    media: MediaSchema | None = None


class BeginReplyRequest(BaseModel):
    message_id: str = Field(min_length=1)


class MediaCatalogItem(BaseModel):
    id: str
    url: str
    title: str = ""
