"""
Dashboard JSON API: sections, folders, cards, search, reordering,
images, per-device favorites/recent, export/import.

Usage in main.py:
    from dashboard_api import create_dashboard_router
    app.include_router(create_dashboard_router(sb, storage_client, store_factory,
                                               search, verify_admin))
"""

import json
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import queries
from favorites import Favorites
from recent import Recent
from storage import validate_image_file
from tree import build_folder_tree, parent_choices
from utils import export_filename


# ============================================================
# Request Models
# ============================================================

class SectionCreate(BaseModel):
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None
    order_index: int = 0


class SectionUpdate(BaseModel):
    name: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    order_index: Optional[int] = None


class FolderCreate(BaseModel):
    name: str
    section_id: str
    parent_id: Optional[str] = None
    order_index: int = 0


class FolderUpdate(BaseModel):
    name: Optional[str] = None
    parent_id: Optional[str] = None
    order_index: Optional[int] = None


class CardCreate(BaseModel):
    title: str
    url: str
    section_id: str
    description: Optional[str] = None
    type: str = "link"
    tags: List[str] = []
    is_favorite: bool = False
    order_index: int = 0
    folder_ids: List[str] = []


class CardUpdate(BaseModel):
    title: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    tags: Optional[List[str]] = None
    is_favorite: Optional[bool] = None
    order_index: Optional[int] = None
    folder_ids: Optional[List[str]] = None


class CardFoldersBody(BaseModel):
    folder_ids: List[str]


class ReorderBody(BaseModel):
    ids: List[str]


class FolderReorderBody(BaseModel):
    section_id: str
    parent_id: Optional[str] = None
    from_index: int
    to_index: int


class FolderMoveBody(BaseModel):
    parent_id: Optional[str] = None
    index: int = 0


class ImportBody(BaseModel):
    confirm: bool = False
    data: dict


# ============================================================
# Helpers
# ============================================================

def _changes(body: BaseModel) -> dict:
    return {k: v for k, v in body.model_dump().items() if v is not None}


def _run(fn, *args, **kwargs):
    """Call a queries function, mapping failures onto HTTP errors."""
    try:
        return fn(*args, **kwargs)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(400, str(e))
    except LookupError as e:
        raise HTTPException(404, str(e))
    except Exception as e:
        print(f"[API] {fn.__name__} failed: {e}")
        raise HTTPException(500, f"{fn.__name__} failed: {e}")


def _found(row, what: str):
    if row is None:
        raise HTTPException(404, f"{what} not found")
    return row


def _require_confirm(confirm: bool):
    if not confirm:
        raise HTTPException(400, "Destructive action requires confirm=true")


async def _read_image(file: UploadFile) -> bytes:
    data = await file.read()
    try:
        validate_image_file(file.content_type, len(data))
    except ValueError as e:
        raise HTTPException(400, str(e))
    return data


def device_id(request: Request) -> str:
    return getattr(request.state, "device_id", None) or "default"


# ============================================================
# Router Factory
# ============================================================

def create_dashboard_router(sb, storage_client, store_factory, search, verify_admin) -> APIRouter:
    """Create the /api router with its collaborators injected."""

    router = APIRouter(prefix="/api", tags=["dashboard"])

    def favorites_for(request: Request) -> Favorites:
        return Favorites(store_factory(device_id(request)))

    def recent_for(request: Request) -> Recent:
        return Recent(store_factory(device_id(request)))

    def changed(result):
        search.invalidate()
        return result

    # --------------------------------------------------------
    # Sections
    # --------------------------------------------------------

    @router.get("/sections")
    async def list_sections():
        return {"sections": _run(queries.get_sections, sb)}

    @router.post("/sections")
    async def create_section(body: SectionCreate):
        return {"section": changed(_run(queries.create_section, sb, _changes(body)))}

    @router.get("/sections/{section_id}")
    async def get_section(section_id: str):
        return {"section": _found(_run(queries.get_section, sb, section_id), "Section")}

    @router.patch("/sections/{section_id}")
    async def update_section(section_id: str, body: SectionUpdate):
        updates = _changes(body)
        if not updates:
            raise HTTPException(400, "Nothing to update")
        row = _run(queries.update_section, sb, section_id, updates)
        return {"section": changed(_found(row, "Section"))}

    @router.delete("/sections/{section_id}")
    async def delete_section(section_id: str, confirm: bool = False):
        _require_confirm(confirm)
        row = _run(queries.delete_section, sb, section_id)
        return {"deleted": changed(_found(row, "Section"))["id"]}

    @router.post("/sections/{section_id}/image")
    async def upload_section_image(section_id: str, file: UploadFile = File(...)):
        data = await _read_image(file)
        row = _run(queries.update_section_with_image, sb, storage_client, section_id, {}, image=data)
        return {"section": _found(row, "Section")}

    @router.delete("/sections/{section_id}/image")
    async def remove_section_image(section_id: str):
        row = _run(queries.update_section_with_image, sb, storage_client, section_id, {}, remove_image=True)
        return {"section": _found(row, "Section")}

    # --------------------------------------------------------
    # Folders
    # --------------------------------------------------------

    @router.get("/sections/{section_id}/folders")
    async def list_folders(section_id: str):
        return {"folders": _run(queries.get_folders_by_section, sb, section_id)}

    @router.get("/sections/{section_id}/folders/tree")
    async def folder_tree(section_id: str):
        folders = _run(queries.get_folders_by_section, sb, section_id)
        return {"tree": build_folder_tree(folders)}

    @router.get("/sections/{section_id}/folders/parent-choices")
    async def folder_parent_choices(section_id: str, folder_id: Optional[str] = None):
        folders = _run(queries.get_folders_by_section, sb, section_id)
        return {"folders": parent_choices(folders, folder_id)}

    @router.post("/folders")
    async def create_folder(body: FolderCreate):
        return {"folder": changed(_run(queries.create_folder, sb, _changes(body)))}

    @router.get("/folders/{folder_id}")
    async def get_folder(folder_id: str):
        return {"folder": _found(_run(queries.get_folder, sb, folder_id), "Folder")}

    @router.patch("/folders/{folder_id}")
    async def update_folder(folder_id: str, body: FolderUpdate):
        updates = _changes(body)
        if not updates:
            raise HTTPException(400, "Nothing to update")
        row = _run(queries.update_folder, sb, folder_id, updates)
        return {"folder": changed(_found(row, "Folder"))}

    @router.delete("/folders/{folder_id}")
    async def delete_folder(folder_id: str, confirm: bool = False):
        _require_confirm(confirm)
        row = _run(queries.delete_folder, sb, folder_id)
        return {"deleted": changed(_found(row, "Folder"))["id"]}

    @router.get("/folders/{folder_id}/cards")
    async def folder_cards(folder_id: str):
        return {"cards": _run(queries.get_cards_in_tree, sb, folder_id)}

    @router.post("/folders/reorder")
    async def reorder_folders_in_parent(body: FolderReorderBody):
        rows = _run(queries.reorder_folders_in_parent, sb, body.section_id,
                    body.parent_id, body.from_index, body.to_index)
        return {"folders": rows}

    @router.post("/folders/{folder_id}/move")
    async def move_folder(folder_id: str, body: FolderMoveBody):
        rows = _run(queries.move_folder_to_parent, sb, folder_id, body.parent_id, body.index)
        return {"folders": rows}

    @router.post("/folders/{folder_id}/image")
    async def upload_folder_image(folder_id: str, file: UploadFile = File(...)):
        data = await _read_image(file)
        row = _run(queries.update_folder_with_image, sb, storage_client, folder_id, {}, image=data)
        return {"folder": _found(row, "Folder")}

    @router.delete("/folders/{folder_id}/image")
    async def remove_folder_image(folder_id: str):
        row = _run(queries.update_folder_with_image, sb, storage_client, folder_id, {}, remove_image=True)
        return {"folder": _found(row, "Folder")}

    # --------------------------------------------------------
    # Cards
    # --------------------------------------------------------

    @router.get("/sections/{section_id}/cards")
    async def list_cards(section_id: str, unfiled: bool = False):
        if unfiled:
            return {"cards": _run(queries.get_cards_without_folder, sb, section_id)}
        return {"cards": _run(queries.get_cards_by_section, sb, section_id)}

    @router.get("/sections/{section_id}/cards/search")
    async def search_section_cards(section_id: str, q: str = ""):
        return {"cards": _run(queries.search_cards, sb, q, section_id)}

    @router.post("/cards")
    async def create_card(body: CardCreate):
        fields = _changes(body)
        folder_ids = fields.pop("folder_ids", [])
        card = _run(queries.create_card, sb, fields)
        if folder_ids:
            _run(queries.update_card_folders, sb, card["id"], folder_ids)
        return {"card": changed(card)}

    @router.get("/cards/{card_id}")
    async def get_card(card_id: str):
        return {"card": _found(_run(queries.get_card, sb, card_id), "Card")}

    @router.patch("/cards/{card_id}")
    async def update_card(card_id: str, body: CardUpdate):
        updates = _changes(body)
        folder_ids = updates.pop("folder_ids", None)
        if not updates and folder_ids is None:
            raise HTTPException(400, "Nothing to update")
        if updates:
            card = _found(_run(queries.update_card, sb, card_id, updates), "Card")
        else:
            card = _found(_run(queries.get_card, sb, card_id), "Card")
        if folder_ids is not None:
            _run(queries.update_card_folders, sb, card_id, folder_ids)
        return {"card": changed(card)}

    @router.delete("/cards/{card_id}")
    async def delete_card(card_id: str, request: Request, confirm: bool = False):
        _require_confirm(confirm)
        row = _found(_run(queries.delete_card, sb, card_id), "Card")
        favorites_for(request).remove(card_id)
        recent_for(request).remove(card_id)
        return {"deleted": changed(row)["id"]}

    @router.get("/cards/{card_id}/folders")
    async def card_folders(card_id: str):
        return {"folders": _run(queries.get_card_folders, sb, card_id)}

    @router.put("/cards/{card_id}/folders")
    async def set_card_folders(card_id: str, body: CardFoldersBody):
        _run(queries.update_card_folders, sb, card_id, body.folder_ids)
        return {"folders": _run(queries.get_card_folders, sb, card_id)}

    @router.post("/cards/{card_id}/image")
    async def upload_card_image(card_id: str, file: UploadFile = File(...)):
        data = await _read_image(file)
        row = _run(queries.update_card_with_image, sb, storage_client, card_id, {}, image=data)
        return {"card": _found(row, "Card")}

    @router.delete("/cards/{card_id}/image")
    async def remove_card_image(card_id: str):
        row = _run(queries.update_card_with_image, sb, storage_client, card_id, {}, remove_image=True)
        return {"card": _found(row, "Card")}

    # --------------------------------------------------------
    # Search / reorder
    # --------------------------------------------------------

    @router.get("/search")
    async def global_search(q: str = ""):
        return _run(search.search, q)

    @router.post("/reorder/{kind}")
    async def reorder(kind: str, body: ReorderBody):
        if kind not in ("sections", "folders", "cards"):
            raise HTTPException(404, f"Cannot reorder {kind}")
        rows = _run(queries.rows_in_order, sb, kind, body.ids)
        persist = {
            "sections": queries.reorder_sections,
            "folders": queries.reorder_folders,
            "cards": queries.reorder_cards,
        }[kind]
        return {kind: _run(persist, sb, rows)}

    # --------------------------------------------------------
    # Favorites / recent (per device)
    # --------------------------------------------------------

    @router.get("/favorites")
    async def list_favorites(request: Request):
        ids = favorites_for(request).ids
        return {"ids": ids, "cards": _run(queries.get_cards, sb, ids)}

    @router.post("/favorites/{card_id}/toggle")
    async def toggle_favorite(card_id: str, request: Request):
        return {"card_id": card_id, "favorite": favorites_for(request).toggle(card_id)}

    @router.get("/recent")
    async def list_recent(request: Request):
        return {"recent": recent_for(request).items}

    @router.post("/recent/cleanup")
    async def cleanup_recent(request: Request):
        recent = recent_for(request)
        removed = recent.cleanup_orphaned(lambda cid: queries.get_card(sb, cid) is not None)
        return {"removed": removed, "recent": recent.items}

    @router.post("/recent/{card_id}")
    async def add_recent(card_id: str, request: Request):
        card = _found(_run(queries.get_card, sb, card_id), "Card")
        return {"recent": recent_for(request).add(card)}

    @router.delete("/recent/{card_id}")
    async def remove_recent(card_id: str, request: Request):
        recent = recent_for(request)
        recent.remove(card_id)
        return {"recent": recent.items}

    @router.delete("/recent")
    async def clear_recent(request: Request):
        recent_for(request).clear()
        return {"recent": []}

    # --------------------------------------------------------
    # Export / import (admin)
    # --------------------------------------------------------

    @router.get("/export")
    async def export(admin: str = Depends(verify_admin)):
        data = _run(queries.export_data, sb)
        return JSONResponse(
            content=data,
            headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
        )

    @router.post("/import/preview")
    async def import_preview(file: UploadFile = File(...), admin: str = Depends(verify_admin)):
        try:
            data = json.loads(await file.read())
        except ValueError:
            raise HTTPException(400, "Could not read the JSON file")
        payload = _run(queries.validate_import, data)
        counts = {table: len(rows) for table, rows in payload.items()}
        return {"counts": counts, "exported_at": data.get("exported_at")}

    @router.post("/import")
    async def import_(body: ImportBody, admin: str = Depends(verify_admin)):
        _require_confirm(body.confirm)
        counts = changed(_run(queries.import_data, sb, body.data))
        return {"imported": counts}

    return router
