"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from dm_service.application.dto.query import Document, LiveQuery
from dm_service.application.dto.sync import SyncState
from dm_service.application.exceptions import NotFoundError
from dm_service.application.mappers import conversation as conversation_mapper
from dm_service.application.mappers import message as message_mapper
from dm_service.domain.entities.conversation import Conversation
from dm_service.domain.entities.identity import Identity, Profile
from dm_service.domain.entities.message import Message, ReplySnapshot
from dm_service.domain.value_objects.enums import MessageType
from dm_service.infrastructure.profiles.memory import InMemoryProfileDirectory

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class StepClock:
    """Each call to now() advances one second."""

    def __init__(self, start: datetime = T0) -> None:
        self._current = start

    def now(self) -> datetime:
        self._current += timedelta(seconds=1)
        return self._current


async def settle(rounds: int = 10) -> None:
    """Let callbacks queued with call_soon and freshly created tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def alice() -> Identity:
    return Identity(id="u1", display_name="Alice", avatar_url="https://img.test/a.png")


@pytest.fixture
def bob() -> Identity:
    return Identity(id="u2", display_name="Bob")


@pytest.fixture
def profiles(alice: Identity, bob: Identity) -> InMemoryProfileDirectory:
    return InMemoryProfileDirectory([
        Profile(id=alice.id, display_name=alice.display_name, avatar_url=alice.avatar_url),
        Profile(id=bob.id, display_name=bob.display_name),
        Profile(id="u3", display_name="Carol"),
    ])


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


def make_conversation(
    *,
    conversation_id: str = "c1",
    participants: tuple[str, str] = ("u1", "u2"),
    updated_at: datetime = T0,
    preview: str = "",
) -> Conversation:
    return Conversation(
        id=conversation_id,
        participants=frozenset(participants),
        created_at=T0,
        updated_at=updated_at,
        last_message_preview=preview,
    )


def make_message(
    *,
    message_id: str = "m1",
    conversation_id: str = "c1",
    sender_id: str = "u1",
    sender_name: str = "Alice",
    content: str = "hello",
    created_at: datetime = T0,
    reply_to: ReplySnapshot | None = None,
) -> Message:
    return Message(
        id=message_id,
        conversation_id=conversation_id,
        sender_id=sender_id,
        sender_name=sender_name,
        type=MessageType.TEXT,
        content=content,
        created_at=created_at,
        reply_to=reply_to,
    )


def conversation_doc(conversation: Conversation) -> Document:
    return Document(id=conversation.id, data=conversation_mapper.entity_to_data(conversation))


def message_doc(message: Message) -> Document:
    return Document(id=message.id, data=message_mapper.entity_to_data(message))


@dataclass
class FakeSubscription:
    query: LiveQuery
    on_snapshot: Callable[[list[Document]], None]
    on_error: Callable[[Exception], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True

    def deliver(self, docs: list[Document]) -> None:
        """Deliver regardless of cancellation, like a callback already in flight."""
        self.on_snapshot(list(docs))

    def fail(self, exc: Exception) -> None:
        self.on_error(exc)


@dataclass
class FakeStore:
    """DocumentStore whose snapshots are delivered by hand from the test."""

    subscriptions: list[FakeSubscription] = field(default_factory=list)
    docs: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    creates: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    updates: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)
    create_gate: asyncio.Event | None = None
    fail_create: Exception | None = None
    fail_update: Exception | None = None

    def subscribe(self, query, on_snapshot, on_error) -> FakeSubscription:
        subscription = FakeSubscription(query, on_snapshot, on_error)
        self.subscriptions.append(subscription)
        return subscription

    async def create(self, collection: str, data: dict[str, Any]) -> str:
        if self.create_gate is not None:
            await self.create_gate.wait()
        if self.fail_create is not None:
            raise self.fail_create
        self.creates.append((collection, data))
        doc_id = f"{collection[:4]}-{len(self.creates)}"
        self.docs.setdefault(collection, {})[doc_id] = dict(data)
        return doc_id

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
        *,
        guard: str | None = None,
    ) -> bool:
        if self.fail_update is not None:
            raise self.fail_update
        current = self.docs.get(collection, {}).get(doc_id)
        if current is None:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        stored = current.get(guard) if guard is not None else None
        if stored is not None and stored > fields[guard]:
            return False
        current.update(fields)
        self.updates.append((collection, doc_id, fields))
        return True

    def creates_in(self, collection: str) -> list[dict[str, Any]]:
        return [data for coll, data in self.creates if coll == collection]

    def live(self, collection: str) -> list[FakeSubscription]:
        return [
            s for s in self.subscriptions
            if s.query.collection == collection and not s.cancelled
        ]


@dataclass
class RecordingListener:
    """SessionListener that keeps everything it was told."""

    conversations: list[SyncState[Conversation]] = field(default_factory=list)
    messages: list[tuple[str, SyncState[Message]]] = field(default_factory=list)
    counterparts: list[tuple[str, Profile]] = field(default_factory=list)
    replies: list[ReplySnapshot | None] = field(default_factory=list)

    def on_conversations(self, state: SyncState[Conversation]) -> None:
        self.conversations.append(state)

    def on_messages(self, conversation_id: str, state: SyncState[Message]) -> None:
        self.messages.append((conversation_id, state))

    def on_counterpart(self, conversation_id: str, profile: Profile) -> None:
        self.counterparts.append((conversation_id, profile))

    def on_reply_changed(self, snapshot: ReplySnapshot | None) -> None:
        self.replies.append(snapshot)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()
