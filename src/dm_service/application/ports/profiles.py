from __future__ import annotations

from typing import Protocol

from dm_service.domain.entities.identity import Profile


class ProfileDirectory(Protocol):
    async def lookup(self, identity_id: str) -> Profile:
        """Return the display profile. Raise NotFoundError for unknown ids."""
        ...

    async def remember(self, profile: Profile) -> None:
        """Record the latest name/avatar reported by the auth provider."""
        ...
