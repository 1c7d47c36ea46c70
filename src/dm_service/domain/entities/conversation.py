from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Conversation:
    id: str
    participants: frozenset[str]
    created_at: datetime
    updated_at: datetime
    last_message_preview: str = ""

    def has_pair(self, a: str, b: str) -> bool:
        """True when the participants are exactly {a, b}."""
        return self.participants == frozenset((a, b))

    def counterpart_of(self, identity_id: str) -> str | None:
        others = [p for p in self.participants if p != identity_id]
        return others[0] if others else None
