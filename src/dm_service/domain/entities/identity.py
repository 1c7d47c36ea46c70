from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Identity:
    """Signed-in caller as reported by the auth provider."""

    id: str
    display_name: str = ""
    avatar_url: str = ""


@dataclass(frozen=True, slots=True)
class Profile:
    id: str
    display_name: str
    avatar_url: str = ""
