from __future__ import annotations

from marketlens.api_client import ApiClient
from marketlens.models.documents import Document, has_source
from marketlens.services.app_state import AppState


async def refresh_documents(api: ApiClient, state: AppState) -> list[Document]:
    """Reload every content object that carries a file source."""
    objects = await api.load_all_objects()
    documents = [Document.from_object(obj) for obj in objects if has_source(obj)]
    state.set_documents(documents)
    return documents


async def refresh_members(api: ApiClient, state: AppState, ws_id: str) -> list[str]:
    members = await api.get_collection_members(ws_id)
    member_ids = [str(m.get("id")) if isinstance(m, dict) else str(m) for m in members]
    state.set_collection_members(ws_id, member_ids)
    return member_ids


async def refresh_workspaces(api: ApiClient, state: AppState) -> list[dict]:
    data = await api.load_collections()
    workspaces = data if isinstance(data, list) else []
    state.set_workspaces(workspaces)
    return workspaces
