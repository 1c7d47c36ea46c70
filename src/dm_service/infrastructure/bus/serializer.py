from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from dm_service.application.dto.query import Change


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, (set, frozenset)):
            return sorted(o)
        return super().default(o)


def serialize_event(event_type: str, payload: dict[str, Any]) -> str:
    envelope = {"event": event_type, "data": payload}
    return json.dumps(envelope, cls=_Encoder)


def deserialize_event(raw: str | bytes) -> tuple[str, dict[str, Any]]:
    data = json.loads(raw)
    return data["event"], data["data"]


def change_payload(change: Change, origin: str) -> dict[str, Any]:
    return {
        "origin": origin,
        "collection": change.collection,
        "id": change.doc_id,
        "data": change.data,
    }


def change_from_payload(payload: dict[str, Any]) -> tuple[Change, str]:
    """Timestamps stay ISO strings: feed data is only matched against filters."""
    change = Change(
        collection=payload["collection"],
        doc_id=payload["id"],
        data=payload.get("data") or {},
    )
    return change, payload.get("origin", "")
