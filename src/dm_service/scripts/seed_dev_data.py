"""Seed development data: two profiles, their conversation and a short exchange."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis

from dm_service.application.mappers import conversation as conversation_mapper
from dm_service.application.mappers import message as message_mapper
from dm_service.config import settings
from dm_service.domain.entities.conversation import Conversation
from dm_service.domain.entities.identity import Profile
from dm_service.domain.entities.message import Message
from dm_service.domain.value_objects.enums import MessageType
from dm_service.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from dm_service.infrastructure.db.session import AsyncSessionLocal, create_schema, engine
from dm_service.infrastructure.profiles.sql import SqlProfileDirectory
from dm_service.infrastructure.store.sql import SqlDocumentStore
from dm_service.log_config import configure_logging

logger = logging.getLogger(__name__)

PROFILES = [
    Profile(id="dev-alice", display_name="Alice"),
    Profile(id="dev-bob", display_name="Bob"),
]


async def seed() -> None:
    await create_schema()
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    store = SqlDocumentStore(
        AsyncSessionLocal, RedisPubSubPublisher(redis), settings.STORE_CHANGES_CHANNEL,
    )
    profiles = SqlProfileDirectory(AsyncSessionLocal)
    try:
        for profile in PROFILES:
            await profiles.remember(profile)

        alice, bob = PROFILES
        start = datetime.now(timezone.utc) - timedelta(minutes=10)
        conversation_id = await store.create(
            conversation_mapper.COLLECTION,
            conversation_mapper.entity_to_data(
                Conversation(
                    id="",
                    participants=frozenset((alice.id, bob.id)),
                    created_at=start,
                    updated_at=start,
                )
            ),
        )

        exchange = [
            (alice, "Hi Bob!"),
            (bob, "Hey Alice, how are you?"),
            (alice, "Great, thanks."),
        ]
        last = start
        for offset, (sender, text) in enumerate(exchange, start=1):
            last = start + timedelta(minutes=offset)
            await store.create(
                message_mapper.COLLECTION,
                message_mapper.entity_to_data(
                    Message(
                        id="",
                        conversation_id=conversation_id,
                        sender_id=sender.id,
                        sender_name=sender.display_name,
                        type=MessageType.TEXT,
                        content=text,
                        created_at=last,
                    )
                ),
            )
        await store.update(
            conversation_mapper.COLLECTION,
            conversation_id,
            {"updated_at": last, "last_message_preview": exchange[-1][1]},
        )
        logger.info("Seeded conversation %s with %d messages", conversation_id, len(exchange))
    finally:
        store.close()
        await redis.aclose()
        await engine.dispose()


def main() -> None:
    configure_logging()
    asyncio.run(seed())


if __name__ == "__main__":
    main()
