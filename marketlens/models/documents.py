from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class Document:
    id: str
    title: str
    type: str
    date: str | None
    source: Any
    parent_id: str | None = None
    parent_title: str | None = None

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> "Document":
        """Map a content object from the objects API into a Document."""
        properties = obj.get("properties") or {}
        content = obj.get("content") or {}
        parent = obj.get("parent")

        parent_id = None
        parent_title = None
        if isinstance(parent, dict):
            parent_id = parent.get("id")
            parent_title = parent.get("name")
        elif parent:
            parent_id = str(parent)

        return cls(
            id=str(obj.get("id", "")),
            title=obj.get("name") or "Untitled",
            type=properties.get("framework") or properties.get("document_type") or "Research",
            date=obj.get("created_at"),
            source=content.get("source") if isinstance(content, dict) else None,
            parent_id=parent_id or properties.get("parent_document_id"),
            parent_title=parent_title or properties.get("parent_document_title"),
        )


def has_source(obj: dict[str, Any]) -> bool:
    content = obj.get("content")
    return isinstance(content, dict) and bool(content.get("source"))
