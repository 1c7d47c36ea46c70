from __future__ import annotations

from typing import Any, Callable, Protocol

from dm_service.application.dto.query import Document, LiveQuery

SnapshotCallback = Callable[[list[Document]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription(Protocol):
    def cancel(self) -> None:
        """Stop delivery. Calling it more than once is a no-op."""
        ...


class DocumentStore(Protocol):
    """Remote document store with live queries."""

    def subscribe(
        self,
        query: LiveQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        """Deliver the initial snapshot, then a full snapshot on every change."""
        ...

    async def create(self, collection: str, data: dict[str, Any]) -> str: ...

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
        *,
        guard: str | None = None,
    ) -> bool:
        """Merge fields into an existing document. Raise NotFoundError if absent.

        With ``guard`` set, the write is skipped when the stored value of that
        field is newer than ``fields[guard]``. Returns False for a skipped write.
        """
        ...
