from __future__ import annotations

from typing import Protocol

from dm_service.domain.entities.identity import Identity


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Identity: ...
