"""Live query description shared by every DocumentStore implementation."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

FilterOp = Literal["==", "array_contains"]


@dataclass(frozen=True, slots=True)
class Document:
    id: str
    data: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Filter:
    field: str
    op: FilterOp
    value: Any

    def matches(self, data: dict[str, Any]) -> bool:
        current = data.get(self.field)
        if self.op == "==":
            return current == self.value
        if self.op == "array_contains":
            return isinstance(current, (list, tuple, set, frozenset)) and self.value in current
        raise ValueError(f"Unsupported filter op: {self.op}")


@dataclass(frozen=True, slots=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(frozen=True, slots=True)
class LiveQuery:
    collection: str
    filters: tuple[Filter, ...] = ()
    order_by: OrderBy | None = None

    def matches(self, data: dict[str, Any]) -> bool:
        return all(f.matches(data) for f in self.filters)

    def sort(self, docs: list[Document]) -> list[Document]:
        """Order documents by the query's field, ties broken by id ascending."""
        ordered = sorted(docs, key=lambda d: d.id)
        if self.order_by is None:
            return ordered
        return sorted(
            ordered,
            key=lambda d: d.data.get(self.order_by.field),
            reverse=self.order_by.descending,
        )


@dataclass(frozen=True, slots=True)
class Change:
    """One write observed by the store, as published on the change feed."""

    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)
