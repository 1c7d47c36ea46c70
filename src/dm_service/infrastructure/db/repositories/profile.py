from __future__ import annotations

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from dm_service.domain.entities.identity import Profile
from dm_service.infrastructure.db.models.profile import ProfileModel


class ProfileRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, identity_id: str) -> Profile | None:
        model = await self._session.get(ProfileModel, identity_id)
        if model is None:
            return None
        return Profile(id=model.id, display_name=model.display_name, avatar_url=model.avatar_url)

    async def upsert(self, profile: Profile) -> None:
        stmt = (
            pg_insert(ProfileModel)
            .values(
                id=profile.id,
                display_name=profile.display_name,
                avatar_url=profile.avatar_url,
            )
            .on_conflict_do_update(
                index_elements=[ProfileModel.id],
                set_={
                    "display_name": profile.display_name,
                    "avatar_url": profile.avatar_url,
                },
            )
        )
        await self._session.execute(stmt)
