from __future__ import annotations

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dm_service.application.dto.query import Document, LiveQuery
from dm_service.application.exceptions import NotFoundError
from dm_service.infrastructure.db.base import Base
from dm_service.infrastructure.db.models.conversation import ConversationModel
from dm_service.infrastructure.db.models.message import MessageModel

COLLECTION_MODELS: dict[str, type[Base]] = {
    "conversations": ConversationModel,
    "messages": MessageModel,
}


def model_for(collection: str) -> Any:
    try:
        return COLLECTION_MODELS[collection]
    except KeyError:
        raise NotFoundError(f"Unknown collection: {collection}") from None


def model_to_document(model: Any) -> Document:
    data = {
        column.key: getattr(model, column.key)
        for column in model.__table__.columns
        if column.key != "id"
    }
    return Document(id=model.id, data=data)


class DocumentRepo:
    """Maps collection-level document operations onto the ORM tables."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def insert(self, collection: str, doc_id: str, data: dict[str, Any]) -> Document:
        model = model_for(collection)(id=doc_id, **data)
        self._session.add(model)
        await self._session.flush()
        return model_to_document(model)

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
        guard: str | None = None,
    ) -> Document | None:
        """Apply the update; None when ``guard`` found a newer stored value."""
        model_cls = model_for(collection)
        stmt = update(model_cls).where(model_cls.id == doc_id)
        if guard is not None:
            stmt = stmt.where(getattr(model_cls, guard) <= fields[guard])
        stmt = stmt.values(**fields).returning(model_cls)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is not None:
            return model_to_document(model)
        exists = await self._session.scalar(
            select(model_cls.id).where(model_cls.id == doc_id)
        )
        if exists is None:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        return None

    async def run_query(self, query: LiveQuery) -> list[Document]:
        model_cls = model_for(query.collection)
        stmt = select(model_cls)
        for flt in query.filters:
            column = getattr(model_cls, flt.field)
            if flt.op == "==":
                stmt = stmt.where(column == flt.value)
            elif flt.op == "array_contains":
                stmt = stmt.where(column.contains([flt.value]))
            else:
                raise ValueError(f"Unsupported filter op: {flt.op}")
        if query.order_by is not None:
            column = getattr(model_cls, query.order_by.field)
            stmt = stmt.order_by(column.desc() if query.order_by.descending else column.asc())
        stmt = stmt.order_by(model_cls.id.asc())
        result = await self._session.execute(stmt)
        return [model_to_document(m) for m in result.scalars().all()]
