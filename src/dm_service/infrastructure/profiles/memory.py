from __future__ import annotations

from collections.abc import Iterable

from dm_service.application.exceptions import NotFoundError
from dm_service.domain.entities.identity import Profile


class InMemoryProfileDirectory:
    def __init__(self, profiles: Iterable[Profile] = ()) -> None:
        self._profiles: dict[str, Profile] = {p.id: p for p in profiles}

    async def lookup(self, identity_id: str) -> Profile:
        profile = self._profiles.get(identity_id)
        if profile is None:
            raise NotFoundError(f"User {identity_id} not found")
        return profile

    async def remember(self, profile: Profile) -> None:
        self._profiles[profile.id] = profile

    def add(self, *profiles: Profile) -> None:
        for profile in profiles:
            self._profiles[profile.id] = profile
