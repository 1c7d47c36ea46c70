from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from dm_service.api.deps import get_verifier
from dm_service.api.v1.schemas.conversation import (
    ConversationResponse,
    OpenConversationRequest,
    ProfileResponse,
    SelectConversationRequest,
)
from dm_service.api.v1.schemas.message import (
    BeginReplyRequest,
    MediaCatalogItem,
    MessageResponse,
    ReplySnapshotResponse,
    SendMessageRequest,
)
from dm_service.application.dto.sync import SyncState
from dm_service.application.exceptions import (
    AppError,
    BusyError,
    InvalidInputError,
    NotFoundError,
    SubscriptionError,
)
from dm_service.config import settings
from dm_service.domain.entities.conversation import Conversation
from dm_service.domain.entities.identity import Identity, Profile
from dm_service.domain.entities.message import MediaRef, Message, ReplySnapshot
from dm_service.domain.value_objects.enums import MessageType
from dm_service.infrastructure.ws.manager import ConnectionManager
from dm_service.infrastructure.ws.protocol import WsInbound, WsOutbound
from dm_service.services.session import MessagingSession, resolve_identity

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

manager = ConnectionManager()

_ERROR_CODES: dict[type[AppError], str] = {
    InvalidInputError: "invalid_input",
    NotFoundError: "not_found",
    BusyError: "busy",
    SubscriptionError: "subscription_error",
}


def get_manager() -> ConnectionManager:
    return manager


def _app_error(exc: AppError) -> WsOutbound:
    for exc_type, code in _ERROR_CODES.items():
        if isinstance(exc, exc_type):
            return WsOutbound.error(code, exc.detail)
    return WsOutbound.error("error", exc.detail)


class QueueListener:
    """SessionListener that turns session events into outbound frames."""

    def __init__(self, outbox: asyncio.Queue[WsOutbound]) -> None:
        self._outbox = outbox

    def on_conversations(self, state: SyncState[Conversation]) -> None:
        self._outbox.put_nowait(WsOutbound(
            type="conversations.snapshot",
            data={
                "items": [
                    ConversationResponse.model_validate(c).model_dump(mode="json")
                    for c in state.items
                ],
                "error": state.error.detail if state.error else None,
            },
        ))

    def on_messages(self, conversation_id: str, state: SyncState[Message]) -> None:
        self._outbox.put_nowait(WsOutbound(
            type="messages.snapshot",
            data={
                "conversation_id": conversation_id,
                "items": [
                    MessageResponse.model_validate(m).model_dump(mode="json")
                    for m in state.items
                ],
                "error": state.error.detail if state.error else None,
            },
        ))

    def on_counterpart(self, conversation_id: str, profile: Profile) -> None:
        self._outbox.put_nowait(WsOutbound(
            type="counterpart.profile",
            data={
                "conversation_id": conversation_id,
                "profile": ProfileResponse.model_validate(profile).model_dump(mode="json"),
            },
        ))

    def on_reply_changed(self, snapshot: ReplySnapshot | None) -> None:
        self._outbox.put_nowait(WsOutbound(
            type="reply.changed",
            data={
                "reply_to": (
                    ReplySnapshotResponse.model_validate(snapshot).model_dump(mode="json")
                    if snapshot
                    else None
                ),
            },
        ))


async def _authenticate(token: str) -> Identity | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


@router.websocket("/ws/dm")
async def ws_dm(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    identity = await _authenticate(token)
    if identity is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    state = websocket.app.state
    identity = await resolve_identity(identity, state.profiles)
    await manager.connect(websocket, identity.id)

    outbox: asyncio.Queue[WsOutbound] = asyncio.Queue()
    session = MessagingSession(
        identity,
        state.store,
        state.profiles,
        QueueListener(outbox),
        compose=state.compose,
    )
    manager.attach(websocket, identity.id, session)

    writer_task = asyncio.create_task(
        _write_loop(websocket, outbox), name=f"ws-writer-{identity.id}",
    )
    heartbeat_task = asyncio.create_task(
        _heartbeat(outbox), name=f"ws-heartbeat-{identity.id}",
    )
    sends: set[asyncio.Task[None]] = set()
    try:
        await state.profiles.remember(
            Profile(
                id=identity.id,
                display_name=identity.display_name,
                avatar_url=identity.avatar_url,
            )
        )
        session.start()
        await _read_loop(websocket, session, outbox, sends)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", identity.id)
    finally:
        heartbeat_task.cancel()
        writer_task.cancel()
        for task in list(sends):
            task.cancel()
        manager.disconnect(websocket, identity.id)


async def _write_loop(ws: WebSocket, outbox: asyncio.Queue[WsOutbound]) -> None:
    try:
        while True:
            frame = await outbox.get()
            await ws.send_text(frame.model_dump_json())
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("WS writer stopped", exc_info=True)


async def _heartbeat(outbox: asyncio.Queue[WsOutbound]) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            outbox.put_nowait(WsOutbound(type="pong", data={}))
    except asyncio.CancelledError:
        pass


async def _read_loop(
    ws: WebSocket,
    session: MessagingSession,
    outbox: asyncio.Queue[WsOutbound],
    sends: set[asyncio.Task[None]],
) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except ValidationError:
            outbox.put_nowait(WsOutbound.error("invalid_payload"))
            continue

        if not msg.known:
            outbox.put_nowait(WsOutbound.error("unknown_type", msg.type))
            continue

        try:
            await _dispatch(msg, session, outbox, sends)
        except ValidationError as exc:
            outbox.put_nowait(WsOutbound.error("invalid_payload", str(exc.errors()[0]["msg"])))
        except AppError as exc:
            outbox.put_nowait(_app_error(exc))


async def _dispatch(
    msg: WsInbound,
    session: MessagingSession,
    outbox: asyncio.Queue[WsOutbound],
    sends: set[asyncio.Task[None]],
) -> None:
    if msg.type == "ping":
        outbox.put_nowait(WsOutbound(type="pong", data={}))

    elif msg.type == "conversation.open":
        req = OpenConversationRequest.model_validate(msg.data)
        conversation_id = await session.open_or_create_conversation(req.other_id)
        outbox.put_nowait(WsOutbound(
            type="conversation.opened", data={"conversation_id": conversation_id},
        ))

    elif msg.type == "conversation.select":
        req = SelectConversationRequest.model_validate(msg.data)
        session.select_conversation(req.conversation_id)

    elif msg.type == "conversation.leave":
        session.leave_conversation()

    elif msg.type == "conversations.retry":
        session.start()

    elif msg.type == "reply.begin":
        req = BeginReplyRequest.model_validate(msg.data)
        session.begin_reply(req.message_id)

    elif msg.type == "reply.dismiss":
        session.dismiss_reply()

    elif msg.type == "media.catalog":
        outbox.put_nowait(WsOutbound(
            type="media.catalog",
            data={
                "items": [
                    MediaCatalogItem.model_validate(item).model_dump()
                    for item in settings.MEDIA_CATALOG
                ],
            },
        ))

    elif msg.type == "message.send":
        req = SendMessageRequest.model_validate(msg.data)
        # Sends never block the read loop.
        task = asyncio.create_task(_handle_send(session, req, outbox))
        sends.add(task)
        task.add_done_callback(sends.discard)


async def _handle_send(
    session: MessagingSession,
    req: SendMessageRequest,
    outbox: asyncio.Queue[WsOutbound],
) -> None:
    try:
        if req.type == MessageType.MEDIA:
            media = MediaRef(url=req.media.url, title=req.media.title) if req.media else None
            message = await session.send_media(media)
        else:
            message = await session.send_text(req.body or "")
    except AppError as exc:
        outbox.put_nowait(_app_error(exc))
        return
    except Exception:
        logger.exception("Send failed for %s", session.identity.id)
        outbox.put_nowait(WsOutbound.error("send_failed"))
        return

    outbox.put_nowait(WsOutbound(
        type="message.sent",
        data={"conversation_id": message.conversation_id, "message_id": message.id},
    ))
