from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from dm_service.application.exceptions import SubscriptionError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class SyncState(Generic[T]):
    """What a sync hands to its listener after every snapshot or failure.

    On failure ``items`` still holds the last snapshot that was delivered.
    """

    items: tuple[T, ...] = ()
    error: SubscriptionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None
