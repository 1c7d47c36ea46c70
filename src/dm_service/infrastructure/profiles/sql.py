from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dm_service.application.exceptions import NotFoundError
from dm_service.domain.entities.identity import Profile
from dm_service.infrastructure.db.uow import SqlAlchemyUoW


class SqlProfileDirectory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def lookup(self, identity_id: str) -> Profile:
        async with self._session_factory() as session:
            profile = await SqlAlchemyUoW(session).profiles.get(identity_id)
        if profile is None:
            raise NotFoundError(f"User {identity_id} not found")
        return profile

    async def remember(self, profile: Profile) -> None:
        async with self._session_factory() as session, SqlAlchemyUoW(session) as uow:
            await uow.profiles.upsert(profile)
            await uow.commit()
