from __future__ import annotations

import asyncio

import pytest

from dm_service.application.exceptions import BusyError, InvalidInputError, NotFoundError
from dm_service.application.mappers import conversation as conversation_mapper
from dm_service.config import settings
from dm_service.domain.entities.identity import Identity
from dm_service.domain.entities.message import MediaRef
from dm_service.domain.value_objects.enums import MessageType, ReplyState
from dm_service.infrastructure.store.memory import InMemoryDocumentStore
from dm_service.services.message_service import ComposePipeline
from dm_service.services.session import MessagingSession, resolve_identity
from tests.conftest import RecordingListener, conversation_doc, make_conversation, settle


@pytest.fixture
def store():
    return InMemoryDocumentStore()


def _session(identity, store, profiles, clock, listener=None, compose=None):
    return MessagingSession(
        identity,
        store,
        profiles,
        listener or RecordingListener(),
        compose=compose or ComposePipeline(store, clock),
        clock=clock,
    )


@pytest.mark.asyncio
async def test_first_contact_creates_and_selects_conversation(alice, store, profiles, clock):
    listener = RecordingListener()
    session = _session(alice, store, profiles, clock, listener)
    session.start()
    await settle()

    conversation_id = await session.open_or_create_conversation("u2")
    await settle()

    docs = store.documents(conversation_mapper.COLLECTION)
    assert len(docs) == 1
    assert docs[0].id == conversation_id
    assert sorted(docs[0].data["participants"]) == ["u1", "u2"]
    assert docs[0].data["last_message_preview"] == ""
    assert session.selected_id == conversation_id
    assert [c.id for c in listener.conversations[-1].items] == [conversation_id]
    assert listener.messages[-1][0] == conversation_id
    assert listener.messages[-1][1].items == ()
    assert listener.counterparts[-1][1].display_name == "Bob"


@pytest.mark.asyncio
async def test_existing_conversation_is_reused(alice, store, profiles, clock):
    session = _session(alice, store, profiles, clock)
    session.start()
    first = await session.open_or_create_conversation("u2")
    await settle()

    second = await session.open_or_create_conversation("u2")

    assert first == second
    assert len(store.documents(conversation_mapper.COLLECTION)) == 1


@pytest.mark.asyncio
async def test_counterpart_finds_conversation_started_by_other_side(alice, bob, store, profiles, clock):
    mine = _session(alice, store, profiles, clock)
    theirs = _session(bob, store, profiles, clock)
    mine.start()
    theirs.start()
    conversation_id = await mine.open_or_create_conversation("u2")
    await settle()

    assert await theirs.open_or_create_conversation("u1") == conversation_id
    assert len(store.documents(conversation_mapper.COLLECTION)) == 1


@pytest.mark.asyncio
async def test_send_updates_both_subscribers(alice, bob, store, profiles, clock):
    alice_view, bob_view = RecordingListener(), RecordingListener()
    mine = _session(alice, store, profiles, clock, alice_view)
    theirs = _session(bob, store, profiles, clock, bob_view)
    mine.start()
    theirs.start()
    conversation_id = await mine.open_or_create_conversation("u2")
    await settle()
    theirs.select_conversation(conversation_id)
    await settle()

    sent = await mine.send_text("  hi Bob  ")
    await settle()

    assert sent.content == "hi Bob"
    for view in (alice_view, bob_view):
        cid, state = view.messages[-1]
        assert cid == conversation_id
        assert [m.content for m in state.items] == ["hi Bob"]
        summary = view.conversations[-1].items[0]
        assert summary.last_message_preview == "hi Bob"
        assert summary.updated_at == sent.created_at


@pytest.mark.asyncio
async def test_conversation_list_moves_recent_activity_first(alice, store, profiles, clock):
    listener = RecordingListener()
    session = _session(alice, store, profiles, clock, listener)
    session.start()
    with_bob = await session.open_or_create_conversation("u2")
    with_carol = await session.open_or_create_conversation("u3")
    await settle()
    assert [c.id for c in session.conversations] == [with_carol, with_bob]

    session.select_conversation(with_bob)
    await session.send_text("back to you")
    await settle()

    assert [c.id for c in session.conversations] == [with_bob, with_carol]


@pytest.mark.asyncio
async def test_reply_carries_snapshot_and_clears_after_send(alice, bob, store, profiles, clock):
    bob_view = RecordingListener()
    mine = _session(alice, store, profiles, clock)
    theirs = _session(bob, store, profiles, clock, bob_view)
    mine.start()
    theirs.start()
    conversation_id = await mine.open_or_create_conversation("u2")
    original = await mine.send_text("original text")
    await settle()
    theirs.select_conversation(conversation_id)
    await settle()

    snapshot = theirs.begin_reply(original.id)
    assert theirs.reply_state == ReplyState.REPLYING
    reply = await theirs.send_text("my answer")
    await settle()

    assert reply.reply_to == snapshot
    assert reply.reply_to.content == "original text"
    assert reply.reply_to.sender_name == "Alice"
    assert theirs.reply_state == ReplyState.IDLE
    assert bob_view.replies == [snapshot, None]
    stored = theirs.messages[-1]
    assert stored.reply_to.id == original.id


@pytest.mark.asyncio
async def test_reply_snapshot_is_not_affected_by_later_edits(alice, bob, store, profiles, clock):
    mine = _session(alice, store, profiles, clock)
    theirs = _session(bob, store, profiles, clock)
    mine.start()
    conversation_id = await mine.open_or_create_conversation("u2")
    original = await mine.send_text("before")
    await settle()
    theirs.select_conversation(
        make_conversation(conversation_id=conversation_id, participants=("u1", "u2"))
    )
    await settle()
    snapshot = theirs.begin_reply(original.id)

    await store.update("messages", original.id, {"content": "after"})
    await settle()
    reply = await theirs.send_text("answer")

    assert theirs.messages[0].content == "after"
    assert reply.reply_to.content == "before"
    assert snapshot.content == "before"


@pytest.mark.asyncio
async def test_switching_conversation_drops_reply_and_old_messages(alice, store, profiles, clock):
    listener = RecordingListener()
    session = _session(alice, store, profiles, clock, listener)
    session.start()
    with_bob = await session.open_or_create_conversation("u2")
    message = await session.send_text("to bob")
    await settle()
    session.begin_reply(message.id)

    with_carol = await session.open_or_create_conversation("u3")
    await session.send_text("to carol")
    await settle()

    assert session.reply_state == ReplyState.IDLE
    assert listener.replies[-1] is None
    assert [m.content for m in session.messages] == ["to carol"]
    assert all(cid == with_carol for cid, _ in listener.messages[-2:])
    assert with_bob != with_carol


@pytest.mark.asyncio
async def test_rapid_double_send_is_rejected(alice, fake_store, profiles, clock):
    fake_store.docs["conversations"] = {"c1": {"participants": ["u1", "u2"]}}
    session = _session(alice, fake_store, profiles, clock)
    session.select_conversation(make_conversation())
    fake_store.create_gate = asyncio.Event()

    first = asyncio.create_task(session.send_text("once"))
    await settle()
    with pytest.raises(BusyError):
        await session.send_text("once")
    fake_store.create_gate.set()
    await first

    assert len(fake_store.creates_in("messages")) == 1


@pytest.mark.asyncio
async def test_send_media_message(alice, store, profiles, clock):
    session = _session(alice, store, profiles, clock)
    session.start()
    await session.open_or_create_conversation("u2")

    message = await session.send_media(MediaRef(url="https://gifs.test/wave.gif", title="wave"))
    await settle()

    assert message.type == MessageType.MEDIA
    assert session.conversations[0].last_message_preview == settings.MEDIA_PREVIEW_PLACEHOLDER


@pytest.mark.asyncio
async def test_send_without_selection_is_invalid(alice, store, profiles, clock):
    session = _session(alice, store, profiles, clock)

    with pytest.raises(InvalidInputError):
        await session.send_text("hello")


@pytest.mark.asyncio
async def test_open_with_unknown_identity_is_not_found(alice, store, profiles, clock):
    session = _session(alice, store, profiles, clock)

    with pytest.raises(NotFoundError):
        await session.open_or_create_conversation("ghost")
    assert store.documents(conversation_mapper.COLLECTION) == []


@pytest.mark.asyncio
async def test_select_foreign_conversation_is_not_found(alice, store, profiles, clock):
    session = _session(alice, store, profiles, clock)

    with pytest.raises(NotFoundError):
        session.select_conversation(make_conversation(participants=("u2", "u3")))
    with pytest.raises(NotFoundError):
        session.select_conversation("unknown")


@pytest.mark.asyncio
async def test_begin_reply_on_unknown_message_is_not_found(alice, store, profiles, clock):
    session = _session(alice, store, profiles, clock)

    with pytest.raises(NotFoundError):
        session.begin_reply("missing")


@pytest.mark.asyncio
async def test_subscription_error_is_reported_with_last_list(alice, store, profiles, clock):
    listener = RecordingListener()
    session = _session(alice, store, profiles, clock, listener)
    session.start()
    await session.open_or_create_conversation("u2")
    await settle()

    store.fail_subscriptions(conversation_mapper.COLLECTION, "permission denied")
    await settle()

    last = listener.conversations[-1]
    assert last.error.detail == "permission denied"
    assert len(last.items) == 1


@pytest.mark.asyncio
async def test_close_stops_updates(alice, store, profiles, clock):
    listener = RecordingListener()
    session = _session(alice, store, profiles, clock, listener)
    session.start()
    await settle()
    seen = len(listener.conversations)

    session.close()
    session.close()
    await store.create(
        conversation_mapper.COLLECTION,
        conversation_doc(make_conversation(conversation_id="late")).data,
    )
    await settle()

    assert len(listener.conversations) == seen
    with pytest.raises(InvalidInputError):
        session.start()


@pytest.mark.asyncio
async def test_nameless_identity_takes_name_from_profile(profiles):
    resolved = await resolve_identity(Identity(id="u2"), profiles, placeholder="User")

    assert resolved.display_name == "Bob"


@pytest.mark.asyncio
async def test_nameless_unknown_identity_gets_placeholder(profiles):
    resolved = await resolve_identity(Identity(id="u9"), profiles, placeholder="User")

    assert resolved.display_name == "User"


@pytest.mark.asyncio
async def test_named_identity_is_kept(alice, profiles):
    assert await resolve_identity(alice, profiles) is alice


@pytest.mark.asyncio
async def test_reply_to_nameless_sender_carries_resolved_name(bob, store, profiles, clock):
    nameless = await resolve_identity(Identity(id="u1"), profiles, placeholder="User")
    mine = _session(nameless, store, profiles, clock)
    theirs = _session(bob, store, profiles, clock)
    mine.start()
    theirs.start()
    conversation_id = await mine.open_or_create_conversation("u2")
    original = await mine.send_text("hi")
    await settle()
    theirs.select_conversation(conversation_id)
    await settle()

    snapshot = theirs.begin_reply(original.id)

    assert original.sender_name == "Alice"
    assert snapshot.sender_name == "Alice"
