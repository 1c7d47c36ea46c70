from __future__ import annotations

from enum import StrEnum


class MessageType(StrEnum):
    TEXT = "text"
    MEDIA = "media"


class ReplyState(StrEnum):
    IDLE = "idle"
    REPLYING = "replying"
