from __future__ import annotations

from dm_service.domain.entities.message import Message, ReplySnapshot
from dm_service.domain.value_objects.enums import ReplyState


class ReplyContext:
    """Which message, if any, the next send replies to.

    Idle --begin_reply--> Replying; Replying --begin_reply--> Replying (overwrite);
    Replying --dismiss/complete/reset--> Idle.
    """

    def __init__(self) -> None:
        self._snapshot: ReplySnapshot | None = None

    @property
    def state(self) -> ReplyState:
        return ReplyState.IDLE if self._snapshot is None else ReplyState.REPLYING

    @property
    def snapshot(self) -> ReplySnapshot | None:
        return self._snapshot

    def begin_reply(self, message: Message) -> ReplySnapshot:
        self._snapshot = message.to_reply_snapshot()
        return self._snapshot

    def dismiss(self) -> None:
        self._snapshot = None

    def complete(self) -> None:
        """Called once a send carrying the snapshot has been persisted."""
        self._snapshot = None

    def reset(self) -> None:
        """Conversation switch: reply state never carries over."""
        self._snapshot = None
