"""Dependency helpers shared by the routers."""
from __future__ import annotations

from dm_service.application.ports.auth import TokenVerifier
from dm_service.config import settings
from dm_service.infrastructure.auth.hs256_verifier import HS256Verifier

_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)
    return _verifier
