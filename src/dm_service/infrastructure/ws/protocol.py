"""Frames exchanged on the direct-messaging socket."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel

INBOUND_TYPES = frozenset({
    "ping",
    "conversation.open",
    "conversation.select",
    "conversation.leave",
    "conversations.retry",
    "reply.begin",
    "reply.dismiss",
    "message.send",
    "media.catalog",
})


class WsInbound(BaseModel):
    """Client → Server."""

    type: str
    data: dict[str, Any] = {}

    @property
    def known(self) -> bool:
        return self.type in INBOUND_TYPES


class WsOutbound(BaseModel):
    """Server → Client.

    pong | conversations.snapshot | messages.snapshot | counterpart.profile |
    reply.changed | conversation.opened | message.sent | media.catalog | error
    """

    type: str
    data: dict[str, Any] = {}

    @classmethod
    def error(cls, code: str, detail: str = "") -> WsOutbound:
        return cls(type="error", data={"code": code, "detail": detail})
