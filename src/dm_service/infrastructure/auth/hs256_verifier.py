from __future__ import annotations

import jwt

from dm_service.domain.entities.identity import Identity


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret.

    ``sub`` is the identity id; ``name`` and ``picture`` carry display data.
    """

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Identity:
        payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        subject = str(payload.get("sub") or "")
        if not subject:
            raise jwt.InvalidTokenError("Token has no subject")
        return Identity(
            id=subject,
            display_name=payload.get("name") or "",
            avatar_url=payload.get("picture") or "",
        )
