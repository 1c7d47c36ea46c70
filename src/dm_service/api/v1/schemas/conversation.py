from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class ConversationResponse(BaseModel):
    id: str
    participants: list[str]
    created_at: datetime
    updated_at: datetime
    last_message_preview: str

    model_config = {"from_attributes": True}

    @field_validator("participants", mode="before")
    @classmethod
    def _sorted(cls, value: Any) -> list[str]:
        return sorted(value)


class ProfileResponse(BaseModel):
    id: str
    display_name: str
    avatar_url: str

    model_config = {"from_attributes": True}


class OpenConversationRequest(BaseModel):
    other_id: str = Field(min_length=1)


class SelectConversationRequest(BaseModel):
    conversation_id: str = Field(min_length=1)
