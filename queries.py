"""
Data access for sections, folders, cards and their folder links.

Every function takes the table client first (supabase.Client or
db_compat.CompatClient; both expose the same table()/rpc() chain).
Backend errors propagate to the caller; route handlers decide how to
report them.
"""

from typing import List, Optional

import storage
from tree import reorder, subtree_ids
from utils import CARD_TYPES, generate_random_color, is_valid_url, utc_now_iso

NIL_UUID = "00000000-0000-0000-0000-000000000000"

EXPORT_TABLES = ("sections", "folders", "cards", "card_folders")

# Keys added by the app on top of table rows; never written back.
_DERIVED_KEYS = {"children", "level", "section_name", "visited_at"}


class DataImportError(Exception):
    """An import failed part-way; see __cause__ for the backend error."""


def _first(resp):
    return resp.data[0] if resp.data else None


def _strip_derived(row: dict) -> dict:
    return {k: v for k, v in row.items() if k not in _DERIVED_KEYS}


# ============================================================
# Sections
# ============================================================

def get_sections(sb) -> list:
    return sb.table("sections").select("*").order("order_index").execute().data or []


def get_section(sb, section_id):
    return _first(sb.table("sections").select("*").eq("id", section_id).limit(1).execute())


def create_section(sb, section: dict) -> dict:
    if not (section.get("name") or "").strip():
        raise ValueError("Section name is required")
    section = {"color": generate_random_color(), **section}
    return _first(sb.table("sections").insert(section).execute())


def update_section(sb, section_id, updates: dict):
    return _first(sb.table("sections").update(updates).eq("id", section_id).execute())


def delete_section(sb, section_id):
    return _first(sb.table("sections").delete().eq("id", section_id).execute())


# ============================================================
# Folders
# ============================================================

def get_folders_by_section(sb, section_id) -> list:
    return (
        sb.table("folders")
        .select("*")
        .eq("section_id", section_id)
        .order("parent_id", nullsfirst=True)
        .order("order_index")
        .execute()
        .data or []
    )


def get_folder(sb, folder_id):
    return _first(sb.table("folders").select("*").eq("id", folder_id).limit(1).execute())


def _check_parent(sb, folder: dict):
    parent_id = folder.get("parent_id")
    if not parent_id:
        return
    parent = get_folder(sb, parent_id)
    if parent is None:
        raise ValueError("Parent folder not found")
    if folder.get("section_id") and parent.get("section_id") != folder["section_id"]:
        raise ValueError("Parent folder belongs to another section")


def create_folder(sb, folder: dict) -> dict:
    if not (folder.get("name") or "").strip():
        raise ValueError("Folder name is required")
    if not folder.get("section_id"):
        raise ValueError("section_id is required")
    _check_parent(sb, folder)
    return _first(sb.table("folders").insert(folder).execute())


def update_folder(sb, folder_id, updates: dict):
    if updates.get("parent_id"):
        current = get_folder(sb, folder_id)
        if current is None:
            return None
        siblings = get_folders_by_section(sb, current["section_id"])
        if updates["parent_id"] in subtree_ids(siblings, folder_id):
            raise ValueError("A folder cannot be moved inside itself")
        _check_parent(sb, {**current, **updates})
    return _first(sb.table("folders").update(updates).eq("id", folder_id).execute())


def delete_folder(sb, folder_id):
    return _first(sb.table("folders").delete().eq("id", folder_id).execute())


# ============================================================
# Cards
# ============================================================

def _clean_tags(tags) -> list:
    seen = []
    for tag in tags or []:
        tag = str(tag).strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def _check_card_fields(card: dict, partial: bool = False):
    if not partial or "title" in card:
        if not (card.get("title") or "").strip():
            raise ValueError("Card title is required")
    if not partial or "url" in card:
        if not is_valid_url(card.get("url")):
            raise ValueError("Please enter a valid URL")
    if "type" in card and card["type"] not in CARD_TYPES:
        raise ValueError(f"Card type must be one of {', '.join(CARD_TYPES)}")


def get_cards_by_section(sb, section_id) -> list:
    return (
        sb.table("cards")
        .select("*")
        .eq("section_id", section_id)
        .order("order_index")
        .order("created_at", desc=True)
        .execute()
        .data or []
    )


def get_cards_without_folder(sb, section_id) -> list:
    return (
        sb.table("cards_without_folder")
        .select("*")
        .eq("section_id", section_id)
        .order("order_index")
        .order("created_at", desc=True)
        .execute()
        .data or []
    )


def get_cards_in_tree(sb, folder_id) -> list:
    """All cards linked to folder_id or any folder below it (server-side RPC)."""
    return sb.rpc("cards_in_tree", {"root": folder_id}).execute().data or []


def get_card(sb, card_id):
    return _first(sb.table("cards").select("*").eq("id", card_id).limit(1).execute())


def get_cards(sb, card_ids: list) -> list:
    """Cards for the given ids, in the order of card_ids; unknown ids are skipped."""
    if not card_ids:
        return []
    rows = sb.table("cards").select("*").in_("id", list(card_ids)).execute().data or []
    by_id = {r["id"]: r for r in rows}
    return [by_id[i] for i in card_ids if i in by_id]


def create_card(sb, card: dict) -> dict:
    card = {"type": "link", **card}
    _check_card_fields(card)
    card["url"] = card["url"].strip()
    card["tags"] = _clean_tags(card.get("tags"))
    return _first(sb.table("cards").insert(card).execute())


def update_card(sb, card_id, updates: dict):
    _check_card_fields(updates, partial=True)
    if "url" in updates:
        updates = {**updates, "url": updates["url"].strip()}
    if "tags" in updates:
        updates = {**updates, "tags": _clean_tags(updates["tags"])}
    return _first(sb.table("cards").update(updates).eq("id", card_id).execute())


def delete_card(sb, card_id):
    return _first(sb.table("cards").delete().eq("id", card_id).execute())


# ============================================================
# Card <-> folder links
# ============================================================

def get_card_folders(sb, card_id) -> list:
    """Folders the card is linked to (id, name, section_id)."""
    links = sb.table("card_folders").select("folder_id").eq("card_id", card_id).execute().data or []
    folder_ids = [l["folder_id"] for l in links]
    if not folder_ids:
        return []
    return (
        sb.table("folders")
        .select("id,name,section_id")
        .in_("id", folder_ids)
        .execute()
        .data or []
    )


def link_card_to_folder(sb, card_id, folder_id) -> list:
    return sb.table("card_folders").insert({"card_id": card_id, "folder_id": folder_id}).execute().data


def unlink_card_from_folder(sb, card_id, folder_id) -> None:
    sb.table("card_folders").delete().eq("card_id", card_id).eq("folder_id", folder_id).execute()


def update_card_folders(sb, card_id, folder_ids: list) -> None:
    """Replace the card's folder links with folder_ids."""
    sb.table("card_folders").delete().eq("card_id", card_id).execute()
    unique = list(dict.fromkeys(folder_ids or []))
    if unique:
        sb.table("card_folders").insert(
            [{"card_id": card_id, "folder_id": fid} for fid in unique]
        ).execute()


# ============================================================
# Search
# ============================================================

def _search_term(text: str) -> str:
    """Strip characters that carry meaning in PostgREST filter strings."""
    return "".join(c for c in (text or "") if c not in ',(){}%*"\\').strip()


def _card_filter(term: str) -> str:
    return f"title.ilike.%{term}%,description.ilike.%{term}%,tags.cs.{{{term}}}"


def search_cards(sb, query: str, section_id=None) -> list:
    term = _search_term(query)
    if not term:
        return []
    builder = sb.table("cards").select("*").or_(_card_filter(term))
    if section_id:
        builder = builder.eq("section_id", section_id)
    return (
        builder.order("is_favorite", desc=True)
        .order("order_index")
        .order("created_at", desc=True)
        .execute()
        .data or []
    )


def _safe(label, fn) -> list:
    try:
        return fn() or []
    except Exception as e:
        print(f"[Search] {label} query failed: {e}")
        return []


def search_all(sb, query: str) -> dict:
    """Sections, folders and cards matching query; each kind independent."""
    term = _search_term(query)
    if not term:
        return {"sections": [], "folders": [], "cards": []}

    sections = _safe("sections", lambda: sb.table("sections").select("*")
                     .ilike("name", f"%{term}%").execute().data)
    folders = _safe("folders", lambda: sb.table("folders").select("*")
                    .ilike("name", f"%{term}%").execute().data)
    cards = _safe("cards", lambda: sb.table("cards").select("*")
                  .or_(_card_filter(term)).execute().data)

    if folders or cards:
        names = {s["id"]: s.get("name") for s in _safe(
            "section names", lambda: sb.table("sections").select("id,name").execute().data)}
        folders = [{**f, "section_name": names.get(f.get("section_id"))} for f in folders]
        cards = [{**c, "section_name": names.get(c.get("section_id"))} for c in cards]

    return {"sections": sections, "folders": folders, "cards": cards}


# ============================================================
# Reordering
# ============================================================

def _persist_order(sb, table: str, rows: list) -> list:
    """Write order_index 0..n-1 for rows, in list order, as one bulk upsert."""
    updates = [{**_strip_derived(row), "order_index": i} for i, row in enumerate(rows)]
    if not updates:
        return []
    resp = sb.table(table).upsert(updates).execute()
    print(f"[Reorder] {table}: resequenced {len(updates)} rows")
    return resp.data


def rows_in_order(sb, table: str, ids: list) -> list:
    """Fetch rows of table for ids, returned in the order given."""
    if not ids:
        return []
    rows = sb.table(table).select("*").in_("id", list(ids)).execute().data or []
    by_id = {r["id"]: r for r in rows}
    missing = [i for i in ids if i not in by_id]
    if missing:
        raise ValueError(f"Unknown {table} ids: {', '.join(map(str, missing))}")
    return [by_id[i] for i in ids]


def reorder_sections(sb, sections: list) -> list:
    return _persist_order(sb, "sections", sections)


def reorder_folders(sb, folders: list) -> list:
    return _persist_order(sb, "folders", folders)


def reorder_cards(sb, cards: list) -> list:
    return _persist_order(sb, "cards", cards)


def _siblings(sb, section_id, parent_id) -> list:
    builder = sb.table("folders").select("*").eq("section_id", section_id)
    if parent_id:
        builder = builder.eq("parent_id", parent_id)
    else:
        builder = builder.is_("parent_id", "null")
    return builder.order("order_index").execute().data or []


def reorder_folders_in_parent(sb, section_id, parent_id, from_index: int, to_index: int) -> list:
    """Move the sibling at from_index to to_index under one parent."""
    siblings = _siblings(sb, section_id, parent_id)
    if not (0 <= from_index < len(siblings)) or not (0 <= to_index < len(siblings)):
        raise ValueError("Folder position out of range")
    return reorder_folders(sb, reorder(siblings, from_index, to_index))


def move_folder_to_parent(sb, folder_id, new_parent_id, new_index: int = 0) -> list:
    """Re-parent a folder and place it at new_index among its new siblings."""
    folder = get_folder(sb, folder_id)
    if folder is None:
        raise LookupError("Folder not found")

    if new_parent_id:
        section_folders = get_folders_by_section(sb, folder["section_id"])
        if new_parent_id in subtree_ids(section_folders, folder_id):
            raise ValueError("A folder cannot be moved inside itself")
        _check_parent(sb, {**folder, "parent_id": new_parent_id})

    siblings = [f for f in _siblings(sb, folder["section_id"], new_parent_id) if f["id"] != folder_id]
    new_index = max(0, min(new_index, len(siblings)))
    siblings.insert(new_index, {**folder, "parent_id": new_parent_id or None})
    return reorder_folders(sb, siblings)


# ============================================================
# Images
# ============================================================

def _create_with_image(sb, storage_client, table, path_fn, created: dict, image: Optional[bytes]):
    if not image or created is None:
        return created
    try:
        url = storage.upload_image(storage_client, image, path_fn(created["id"]))
    except Exception as e:
        print(f"[Storage] Upload failed for {table} {created['id']}, keeping record without image: {e}")
        return created
    return _first(sb.table(table).update({"image_url": url}).eq("id", created["id"]).execute()) or created


def _update_with_image(sb, storage_client, table, path_fn, row_id, updates: dict,
                       image: Optional[bytes], remove_image: bool, update_fn):
    if not _first(sb.table(table).select("id").eq("id", row_id).limit(1).execute()):
        return None
    updates = dict(updates)
    path = path_fn(row_id)
    if image:
        updates["image_url"] = storage.upload_image(storage_client, image, path)
    elif remove_image:
        try:
            storage.delete_image(storage_client, path)
        except Exception as e:
            print(f"[Storage] Could not remove {path}: {e}")
        updates["image_url"] = None
    return update_fn(sb, row_id, updates)


def create_section_with_image(sb, storage_client, section: dict, image: Optional[bytes] = None):
    created = create_section(sb, section)
    return _create_with_image(sb, storage_client, "sections", storage.section_image_path, created, image)


def update_section_with_image(sb, storage_client, section_id, updates: dict,
                              image: Optional[bytes] = None, remove_image: bool = False):
    return _update_with_image(sb, storage_client, "sections", storage.section_image_path,
                              section_id, updates, image, remove_image, update_section)


def create_folder_with_image(sb, storage_client, folder: dict, image: Optional[bytes] = None):
    created = create_folder(sb, folder)
    return _create_with_image(sb, storage_client, "folders", storage.folder_image_path, created, image)


def update_folder_with_image(sb, storage_client, folder_id, updates: dict,
                             image: Optional[bytes] = None, remove_image: bool = False):
    return _update_with_image(sb, storage_client, "folders", storage.folder_image_path,
                              folder_id, updates, image, remove_image, update_folder)


def create_card_with_image(sb, storage_client, card: dict, image: Optional[bytes] = None):
    created = create_card(sb, card)
    return _create_with_image(sb, storage_client, "cards", storage.card_image_path, created, image)


def update_card_with_image(sb, storage_client, card_id, updates: dict,
                           image: Optional[bytes] = None, remove_image: bool = False):
    return _update_with_image(sb, storage_client, "cards", storage.card_image_path,
                              card_id, updates, image, remove_image, update_card)


# ============================================================
# Export / Import
# ============================================================

def export_data(sb) -> dict:
    """Full dump of the four tables as one JSON-ready document."""
    return {
        "sections": get_sections(sb),
        "folders": sb.table("folders").select("*").order("created_at").execute().data or [],
        "cards": sb.table("cards").select("*").order("created_at").execute().data or [],
        "card_folders": sb.table("card_folders").select("*").execute().data or [],
        "exported_at": utc_now_iso(),
    }


def validate_import(data) -> dict:
    """Check the document shape; returns the four table lists."""
    if not isinstance(data, dict):
        raise ValueError("Import file must be a JSON object")
    payload = {}
    for table in EXPORT_TABLES:
        rows = data.get(table) or []
        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise ValueError(f"'{table}' must be a list of objects")
        payload[table] = rows
    return payload


def _parents_first(folders: List[dict]) -> List[dict]:
    """Order folders so every parent precedes its children."""
    ids = {f.get("id") for f in folders}
    placed = set()
    ordered = []
    pending = list(folders)
    while pending:
        remaining = []
        for f in pending:
            parent = f.get("parent_id")
            if not parent or parent in placed or parent not in ids:
                ordered.append(f)
                placed.add(f.get("id"))
            else:
                remaining.append(f)
        if len(remaining) == len(pending):
            # Cycle in the document; keep the rest as given.
            ordered.extend(remaining)
            break
        pending = remaining
    return ordered


def _replace_all(client, payload: dict) -> None:
    client.table("card_folders").delete().neq("card_id", NIL_UUID).execute()
    client.table("cards").delete().neq("id", NIL_UUID).execute()
    client.table("folders").delete().neq("id", NIL_UUID).execute()
    client.table("sections").delete().neq("id", NIL_UUID).execute()

    if payload["sections"]:
        client.table("sections").insert(payload["sections"]).execute()
    if payload["folders"]:
        client.table("folders").insert(_parents_first(payload["folders"])).execute()
    if payload["cards"]:
        client.table("cards").insert(payload["cards"]).execute()
    if payload["card_folders"]:
        client.table("card_folders").insert(payload["card_folders"]).execute()


def import_data(sb, data) -> dict:
    """Replace all dashboard data with the contents of an export document.

    Direct postgres clients run the whole replacement in one transaction.
    Over REST the current data is snapshotted first and written back if
    any step fails. Returns per-table row counts.
    """
    payload = validate_import(data)
    counts = {t: len(payload[t]) for t in EXPORT_TABLES}

    if getattr(sb, "supports_transactions", False):
        try:
            with sb.transaction() as tx:
                _replace_all(tx, payload)
        except Exception as e:
            print(f"[Import] Failed, transaction rolled back: {e}")
            raise DataImportError(f"Import failed, no changes were made: {e}") from e
        print(f"[Import] Imported {counts}")
        return counts

    snapshot = validate_import(export_data(sb))
    try:
        _replace_all(sb, payload)
    except Exception as e:
        print(f"[Import] Failed, restoring previous data: {e}")
        try:
            _replace_all(sb, snapshot)
        except Exception as restore_error:
            print(f"[Import] Restore failed, data may be incomplete: {restore_error}")
            raise DataImportError(
                f"Import failed and previous data could not be restored: {e}"
            ) from e
        raise DataImportError(f"Import failed, previous data restored: {e}") from e
    print(f"[Import] Imported {counts}")
    return counts
