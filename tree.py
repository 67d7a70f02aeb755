"""
Folder tree helpers: flat folder rows to nested nodes and back.
"""

from typing import List, Optional


def build_folder_tree(folders: List[dict]) -> List[dict]:
    """Nest a flat folder list under its parents.

    Each node is a copy of the folder row with a ``children`` list.
    Input order is kept among siblings. A folder whose parent_id matches
    no folder in the list is dropped together with its subtree.
    """
    nodes = {}
    for folder in folders:
        nodes[folder["id"]] = {**folder, "children": []}

    roots = []
    for folder in folders:
        node = nodes[folder["id"]]
        parent_id = folder.get("parent_id")
        if parent_id:
            parent = nodes.get(parent_id)
            if parent is not None:
                parent["children"].append(node)
        else:
            roots.append(node)
    return roots


def flatten_folder_tree(folders: List[dict], parent_id=None, level: int = 0) -> List[dict]:
    """Depth-first flat list of folders with a ``level`` depth key."""
    result = []
    for folder in folders:
        if folder.get("parent_id") == parent_id:
            result.append({**folder, "level": level})
            result.extend(flatten_folder_tree(folders, folder["id"], level + 1))
    return result


def reorder(items: list, start: int, end: int) -> list:
    """Move items[start] to position end; returns a new list."""
    result = list(items)
    moved = result.pop(start)
    result.insert(end, moved)
    return result


def folder_path(folders: List[dict], folder_id) -> List[dict]:
    """Breadcrumb from the root folder down to folder_id (inclusive)."""
    by_id = {f["id"]: f for f in folders}
    path = []
    seen = set()
    current = by_id.get(folder_id)
    while current is not None and current["id"] not in seen:
        seen.add(current["id"])
        path.insert(0, current)
        current = by_id.get(current.get("parent_id"))
    return path


def subtree_ids(folders: List[dict], folder_id) -> set:
    """folder_id plus the ids of every folder below it."""
    children = {}
    for f in folders:
        children.setdefault(f.get("parent_id"), []).append(f["id"])
    ids = set()
    stack = [folder_id]
    while stack:
        fid = stack.pop()
        if fid in ids:
            continue
        ids.add(fid)
        stack.extend(children.get(fid, []))
    return ids


def parent_choices(folders: List[dict], folder_id: Optional[str] = None) -> List[dict]:
    """Folders that may become the parent of folder_id, indented by depth.

    The folder itself is removed first, so its descendants lose their
    parent and fall out of the tree as well.
    """
    remaining = [f for f in folders if f["id"] != folder_id]
    return _flatten_nodes(build_folder_tree(remaining))


def _flatten_nodes(nodes: List[dict], level: int = 0) -> List[dict]:
    result = []
    for node in nodes:
        row = {k: v for k, v in node.items() if k != "children"}
        row["level"] = level
        result.append(row)
        result.extend(_flatten_nodes(node["children"], level + 1))
    return result
