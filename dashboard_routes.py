"""
Dashboard HTML pages: home, section, folder, card detail, search and
the admin backup page. Import and register on the FastAPI app from main.py.
"""

import json
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse

import queries
from dashboard_api import device_id
from favorites import Favorites
from recent import Recent
from search import MIN_QUERY_LENGTH, SEARCH_DEBOUNCE_SECONDS, filter_cards
from storage import validate_image_file
from tree import build_folder_tree, folder_path, parent_choices
from utils import CARD_TYPES, card_type_icon, extract_domain


# ============================================================
# HTML Helpers
# ============================================================

_CSS = """
* { box-sizing: border-box; margin: 0; padding: 0; }
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
       background: #f5f5f5; color: #222; line-height: 1.5; }
a { color: #2563eb; text-decoration: none; }
a:hover { text-decoration: underline; }
nav { background: #1e293b; padding: 12px 24px; display: flex; gap: 24px; align-items: center; }
nav a { color: #e2e8f0; font-weight: 600; font-size: 15px; }
nav a:hover { color: #fff; text-decoration: none; }
nav .brand { color: #38bdf8; font-size: 18px; font-weight: 700; margin-right: auto; }
.container { max-width: 1100px; margin: 24px auto; padding: 0 16px; }
.layout { display: grid; grid-template-columns: 260px 1fr; gap: 16px; }
@media (max-width: 768px) { .layout { grid-template-columns: 1fr; } }
.panel { background: #fff; border: 1px solid #e2e8f0; border-radius: 8px; padding: 20px; margin-bottom: 16px; }
.panel h2 { margin-bottom: 12px; font-size: 18px; color: #1e293b; border-bottom: 2px solid #e2e8f0; padding-bottom: 8px; }
.msg-ok { background: #dcfce7; color: #166534; padding: 10px 16px; border-radius: 6px; margin-bottom: 16px; }
.msg-err { background: #fee2e2; color: #991b1b; padding: 10px 16px; border-radius: 6px; margin-bottom: 16px; }
.grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(240px, 1fr)); gap: 12px; }
.tile { background: #fff; border: 1px solid #e2e8f0; border-radius: 8px; padding: 14px; position: relative; }
.tile .thumb { width: 100%; height: 120px; object-fit: cover; border-radius: 6px; margin-bottom: 8px; }
.tile .title { font-weight: 600; color: #1e293b; }
.tile .domain { color: #64748b; font-size: 12px; }
.tile .desc { color: #475569; font-size: 13px; margin-top: 4px; }
.tile .actions { display: flex; gap: 6px; margin-top: 8px; }
.tile[draggable="true"] { cursor: grab; }
.swatch { display: inline-block; width: 12px; height: 12px; border-radius: 50%; margin-right: 6px; vertical-align: middle; }
.tree ul { list-style: none; padding-left: 14px; }
.tree > ul { padding-left: 0; }
.tree li { padding: 2px 0; font-size: 14px; }
.tree a.current { font-weight: 700; }
.crumbs { font-size: 14px; color: #64748b; margin-bottom: 12px; }
.tag { display: inline-block; background: #e0e7ff; color: #3730a3; padding: 2px 8px; border-radius: 10px; font-size: 12px; margin: 2px; }
button, .btn { cursor: pointer; padding: 6px 14px; border-radius: 6px; border: 1px solid #d1d5db;
               background: #fff; font-size: 13px; font-weight: 500; }
button:hover, .btn:hover { background: #f1f5f9; }
.btn-primary { background: #2563eb; color: #fff; border-color: #2563eb; }
.btn-danger { color: #dc2626; border-color: #fca5a5; }
.btn-sm { padding: 3px 10px; font-size: 12px; }
.star { border: none; background: none; font-size: 16px; color: #f59e0b; padding: 0 4px; }
.inline-form { display: inline-block; margin: 0 4px; }
.stack { display: flex; flex-direction: column; gap: 8px; }
.filter-bar { display: flex; gap: 8px; align-items: center; margin-bottom: 16px; flex-wrap: wrap; }
input[type="text"], input[type="url"], input[type="number"], input[type="search"], select, textarea {
    padding: 6px 10px; border: 1px solid #d1d5db; border-radius: 6px; font-size: 13px; width: 100%; }
.filter-bar input { width: auto; flex: 1; }
.muted { color: #64748b; font-size: 13px; }
.kv { display: flex; justify-content: space-between; padding: 4px 0; border-bottom: 1px solid #f1f5f9; font-size: 14px; }
"""

_REORDER_JS = """
<script>
(function () {
  var grid = document.querySelector('[data-reorder]');
  if (!grid) return;
  var dragged = null;
  grid.addEventListener('dragstart', function (e) { dragged = e.target.closest('[data-id]'); });
  grid.addEventListener('dragover', function (e) { e.preventDefault(); });
  grid.addEventListener('drop', function (e) {
    e.preventDefault();
    var target = e.target.closest('[data-id]');
    if (!dragged || !target || dragged === target) return;
    var tiles = Array.prototype.slice.call(grid.querySelectorAll('[data-id]'));
    if (tiles.indexOf(dragged) < tiles.indexOf(target)) { target.after(dragged); } else { target.before(dragged); }
    var ids = Array.prototype.map.call(grid.querySelectorAll('[data-id]'), function (el) { return el.dataset.id; });
    fetch('/api/reorder/' + grid.dataset.reorder, {
      method: 'POST', headers: {'Content-Type': 'application/json'}, body: JSON.stringify({ids: ids})
    }).then(function (r) { if (!r.ok) { console.error('Failed to reorder', r.status); location.reload(); } });
  });
})();
</script>
"""


def _esc(s) -> str:
    """Basic HTML escaping."""
    s = "" if s is None else str(s)
    return s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")


def _nav():
    return """<nav>
        <span class="brand">&#128278; Linkboard</span>
        <a href="/">Home</a>
        <a href="/search">Search</a>
        <a href="/admin/backup">Backup</a>
    </nav>"""


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{_esc(title)} - Linkboard</title>
<style>{_CSS}</style>
</head>
<body>
{_nav()}
<div class="container">
{body}
</div>
</body>
</html>"""


def _messages(message: Optional[str], error: Optional[str] = None) -> str:
    parts = []
    if message:
        parts.append(f'<div class="msg-ok">{_esc(message)}</div>')
    if error:
        parts.append(f'<div class="msg-err">{_esc(error)}</div>')
    return "".join(parts)


def _redirect(path: str, message: str = None, error: str = None) -> RedirectResponse:
    if message:
        path += ("&" if "?" in path else "?") + f"message={quote(message)}"
    if error:
        path += ("&" if "?" in path else "?") + f"error={quote(error)}"
    return RedirectResponse(url=path, status_code=303)


def _back(request: Request, fallback: str = "/") -> str:
    referer = request.headers.get("referer") or ""
    base = str(request.base_url)
    if referer.startswith(base):
        return "/" + referer[len(base):]
    return fallback


def _confirm_form(action: str, label: str, prompt: str) -> str:
    prompt = _esc(prompt).replace("\\", "\\\\").replace("'", "\\'")
    return (f'<form class="inline-form" method="post" action="{_esc(action)}" '
            f'onsubmit="return confirm(\'{prompt}\')">'
            f'<button class="btn btn-sm btn-danger" type="submit">{_esc(label)}</button></form>')


def _card_tile(card: dict, favorite_ids, draggable: bool = False) -> str:
    cid = card.get("card_id") or card.get("id")
    star = "&#9733;" if cid in favorite_ids else "&#9734;"
    thumb = f'<img class="thumb" src="{_esc(card["image_url"])}" alt="">' if card.get("image_url") else ""
    tags = "".join(f'<span class="tag">{_esc(t)}</span>' for t in (card.get("tags") or []))
    desc = f'<div class="desc">{_esc(card["description"])}</div>' if card.get("description") else ""
    drag = ' draggable="true"' if draggable else ""
    return f"""<div class="tile" data-id="{_esc(cid)}"{drag}>
        {thumb}
        <div class="title">{card_type_icon(card.get("type"))} <a href="/c/{_esc(cid)}/open" target="_blank" rel="noopener noreferrer">{_esc(card.get("title"))}</a></div>
        <div class="domain">{_esc(extract_domain(card.get("url") or ""))}</div>
        {desc}
        <div>{tags}</div>
        <div class="actions">
            <form class="inline-form" method="post" action="/c/{_esc(cid)}/favorite"><button class="star" type="submit" title="Toggle favorite">{star}</button></form>
            <a class="btn btn-sm" href="/c/{_esc(cid)}">Details</a>
            {_confirm_form(f"/c/{cid}/delete", "Delete", f"Delete card {card.get('title') or ''}? This cannot be undone.")}
        </div>
    </div>"""


def _card_grid(cards, favorite_ids, reorder_kind: str = None, empty: str = "No cards yet") -> str:
    if not cards:
        return f'<p class="muted">{_esc(empty)}</p>'
    attr = f' data-reorder="{reorder_kind}"' if reorder_kind else ""
    tiles = "".join(_card_tile(c, favorite_ids, draggable=bool(reorder_kind)) for c in cards)
    script = _REORDER_JS if reorder_kind else ""
    return f'<div class="grid"{attr}>{tiles}</div>{script}'


def _render_tree(nodes, section_id, current_id=None) -> str:
    if not nodes:
        return ""
    items = []
    for node in nodes:
        cls = ' class="current"' if node["id"] == current_id else ""
        items.append(
            f'<li>&#128193; <a{cls} href="/s/{_esc(section_id)}/f/{_esc(node["id"])}">{_esc(node["name"])}</a>'
            f'{_render_tree(node["children"], section_id, current_id)}</li>'
        )
    return f"<ul>{''.join(items)}</ul>"


def _filter_bar(action: str, q: str, favorites_only: bool) -> str:
    checked = " checked" if favorites_only else ""
    return f"""<form class="filter-bar" method="get" action="{_esc(action)}">
        <input type="search" name="q" value="{_esc(q)}" placeholder="Filter cards...">
        <label><input type="checkbox" name="favorites" value="1"{checked}> Favorites only</label>
        <button class="btn" type="submit">Apply</button>
    </form>"""


def _folder_options(folders, selected=None) -> str:
    opts = ['<option value="">(top level)</option>']
    for f in folders:
        sel = " selected" if f["id"] == selected else ""
        indent = "&nbsp;&nbsp;" * f.get("level", 0)
        opts.append(f'<option value="{_esc(f["id"])}"{sel}>{indent}{_esc(f["name"])}</option>')
    return "".join(opts)


def _card_form(section_id: str, folders, preselect_folder: str = None) -> str:
    types = "".join(f'<option value="{t}">{t}</option>' for t in CARD_TYPES)
    checks = "".join(
        f'<label>{"&nbsp;&nbsp;" * f.get("level", 0)}<input type="checkbox" name="folder_ids" value="{_esc(f["id"])}"'
        f'{" checked" if f["id"] == preselect_folder else ""}> {_esc(f["name"])}</label>'
        for f in folders
    )
    return f"""<form class="stack" method="post" action="/s/{_esc(section_id)}/cards/new" enctype="multipart/form-data">
        <input type="text" name="title" placeholder="Title" required>
        <input type="url" name="url" placeholder="https://..." required>
        <textarea name="description" placeholder="Description"></textarea>
        <select name="type">{types}</select>
        <input type="text" name="tags" placeholder="Tags, comma separated">
        <input type="file" name="image" accept="image/jpeg,image/png,image/webp">
        {checks}
        <button class="btn btn-primary" type="submit">Add card</button>
    </form>"""


def _section_sidebar(section, folders, current_id=None) -> str:
    tree = _render_tree(build_folder_tree(folders), section["id"], current_id) or '<p class="muted">No folders yet</p>'
    choices = parent_choices(folders)
    return f"""<div class="panel">
        <h2><span class="swatch" style="background:{_esc(section.get('color') or '#94a3b8')}"></span>{_esc(section.get('icon') or '')} <a href="/s/{_esc(section['id'])}">{_esc(section['name'])}</a></h2>
        <div class="tree">{tree}</div>
    </div>
    <div class="panel">
        <h2>New folder</h2>
        <form class="stack" method="post" action="/s/{_esc(section['id'])}/folders/new" enctype="multipart/form-data">
            <input type="text" name="name" placeholder="Folder name" required>
            <select name="parent_id">{_folder_options(choices, current_id)}</select>
            <input type="file" name="image" accept="image/jpeg,image/png,image/webp">
            <button class="btn btn-primary" type="submit">Create</button>
        </form>
    </div>"""


async def _optional_image(image: Optional[UploadFile]) -> Optional[bytes]:
    if image is None or not image.filename:
        return None
    data = await image.read()
    if not data:
        return None
    validate_image_file(image.content_type, len(data))
    return data


# ============================================================
# Routes
# ============================================================

def register_dashboard_routes(app, sb, storage_client, store_factory, search, verify_admin):
    """Register all dashboard HTML routes on the FastAPI app."""

    def local_state(request: Request):
        store = store_factory(device_id(request))
        return Favorites(store), Recent(store)

    def section_or_404(section_id):
        section = queries.get_section(sb, section_id)
        if section is None:
            raise HTTPException(404, "Section not found")
        return section

    # --- Home ---

    @app.get("/", response_class=HTMLResponse)
    async def page_home(request: Request, message: Optional[str] = None, error: Optional[str] = None):
        favorites, recent = local_state(request)
        sections = queries.get_sections(sb)
        favorite_cards = queries.get_cards(sb, favorites.ids)
        fav_ids = set(favorites.ids)

        tiles = []
        for s in sections:
            thumb = f'<img class="thumb" src="{_esc(s["image_url"])}" alt="">' if s.get("image_url") else ""
            tiles.append(f"""<div class="tile" data-id="{_esc(s['id'])}" draggable="true">
                {thumb}
                <div class="title"><span class="swatch" style="background:{_esc(s.get('color') or '#94a3b8')}"></span>{_esc(s.get('icon') or '')} <a href="/s/{_esc(s['id'])}">{_esc(s['name'])}</a></div>
                <div class="actions">{_confirm_form(f"/s/{s['id']}/delete", "Delete", f"Delete section {s['name']}? All its folders and cards will be deleted.")}</div>
            </div>""")
        section_grid = (f'<div class="grid" data-reorder="sections">{"".join(tiles)}</div>{_REORDER_JS}'
                        if tiles else '<p class="muted">No sections yet</p>')

        recent_rows = "".join(
            f'<div class="kv"><a href="/c/{_esc(r.get("id"))}">{_esc(r.get("title"))}</a>'
            f'<span class="muted">{_esc((r.get("visited_at") or "")[:16].replace("T", " "))}</span></div>'
            for r in recent.items
        ) or '<p class="muted">Nothing opened yet</p>'

        body = f"""{_messages(message, error)}
        <div class="panel"><h2>Sections</h2>{section_grid}</div>
        <div class="panel">
            <h2>New section</h2>
            <form class="stack" method="post" action="/sections/new" enctype="multipart/form-data">
                <input type="text" name="name" placeholder="Section name" required>
                <input type="text" name="icon" placeholder="Icon (emoji)">
                <input type="text" name="color" placeholder="#3b82f6">
                <input type="file" name="image" accept="image/jpeg,image/png,image/webp">
                <button class="btn btn-primary" type="submit">Create</button>
            </form>
        </div>
        <div class="panel"><h2>Favorites</h2>{_card_grid(favorite_cards, fav_ids, empty="No favorites yet")}</div>
        <div class="panel"><h2>Recent</h2>{recent_rows}
            <form class="inline-form" method="post" action="/recent/clear"><button class="btn btn-sm" type="submit">Clear</button></form>
        </div>"""
        return _page("Home", body)

    @app.post("/sections/new")
    async def page_create_section(name: str = Form(...), icon: str = Form(""), color: str = Form(""),
                                  image: Optional[UploadFile] = File(None)):
        try:
            data = await _optional_image(image)
            fields = {"name": name.strip(), "icon": icon.strip() or None}
            if color.strip():
                fields["color"] = color.strip()
            section = queries.create_section_with_image(sb, storage_client, fields, data)
        except ValueError as e:
            return _redirect("/", error=str(e))
        search.invalidate()
        return _redirect(f"/s/{section['id']}", message="Section created")

    @app.post("/s/{section_id}/delete")
    async def page_delete_section(section_id: str):
        queries.delete_section(sb, section_id)
        search.invalidate()
        return _redirect("/", message="Section deleted")

    # --- Section view ---

    @app.get("/s/{section_id}", response_class=HTMLResponse)
    async def page_section(request: Request, section_id: str, q: str = "", favorites: bool = False,
                           message: Optional[str] = None, error: Optional[str] = None):
        section = section_or_404(section_id)
        favs, _ = local_state(request)
        folders = queries.get_folders_by_section(sb, section_id)
        if q:
            cards = queries.search_cards(sb, q, section_id)
        else:
            cards = queries.get_cards_without_folder(sb, section_id)
        cards = filter_cards(cards, favorite_ids=favs.ids if favorites else None)
        can_reorder = not q and not favorites
        heading = "Search results" if q else "Cards without folder"

        body = f"""{_messages(message, error)}
        <div class="layout">
            <div>{_section_sidebar(section, folders)}</div>
            <div>
                {_filter_bar(f"/s/{section_id}", q, favorites)}
                <div class="panel"><h2>{heading}</h2>{_card_grid(cards, set(favs.ids), "cards" if can_reorder else None)}</div>
                <div class="panel"><h2>New card</h2>{_card_form(section_id, parent_choices(folders))}</div>
            </div>
        </div>"""
        return _page(section["name"], body)

    @app.post("/s/{section_id}/folders/new")
    async def page_create_folder(section_id: str, name: str = Form(...), parent_id: str = Form(""),
                                 image: Optional[UploadFile] = File(None)):
        try:
            data = await _optional_image(image)
            folder = queries.create_folder_with_image(sb, storage_client, {
                "name": name.strip(),
                "section_id": section_id,
                "parent_id": parent_id or None,
            }, data)
        except ValueError as e:
            return _redirect(f"/s/{section_id}", error=str(e))
        search.invalidate()
        return _redirect(f"/s/{section_id}/f/{folder['id']}", message="Folder created")

    @app.post("/s/{section_id}/f/{folder_id}/delete")
    async def page_delete_folder(section_id: str, folder_id: str):
        queries.delete_folder(sb, folder_id)
        search.invalidate()
        return _redirect(f"/s/{section_id}", message="Folder deleted")

    @app.post("/s/{section_id}/cards/new")
    async def page_create_card(request: Request, section_id: str):
        form = await request.form()
        folder_ids = [f for f in form.getlist("folder_ids") if f]
        tags = [t.strip() for t in (form.get("tags") or "").split(",") if t.strip()]
        back = _back(request, f"/s/{section_id}")
        try:
            image = form.get("image")
            data = await _optional_image(image if hasattr(image, "read") else None)
            card = queries.create_card_with_image(sb, storage_client, {
                "title": (form.get("title") or "").strip(),
                "url": (form.get("url") or "").strip(),
                "description": (form.get("description") or "").strip() or None,
                "type": form.get("type") or "link",
                "tags": tags,
                "section_id": section_id,
            }, data)
        except ValueError as e:
            return _redirect(back.split("?")[0], error=str(e))
        if folder_ids:
            queries.update_card_folders(sb, card["id"], folder_ids)
        search.invalidate()
        return _redirect(back.split("?")[0], message="Card added")

    # --- Folder view ---

    @app.get("/s/{section_id}/f/{folder_id}", response_class=HTMLResponse)
    async def page_folder(request: Request, section_id: str, folder_id: str, q: str = "",
                          favorites: bool = False, message: Optional[str] = None, error: Optional[str] = None):
        section = section_or_404(section_id)
        folders = queries.get_folders_by_section(sb, section_id)
        folder = next((f for f in folders if f["id"] == folder_id), None)
        if folder is None:
            raise HTTPException(404, "Folder not found")
        favs, _ = local_state(request)

        cards = queries.get_cards_in_tree(sb, folder_id)
        cards = filter_cards(cards, q, favs.ids if favorites else None)
        can_reorder = not q and not favorites

        crumbs = [f'<a href="/s/{_esc(section_id)}">{_esc(section["name"])}</a>']
        crumbs += [f'<a href="/s/{_esc(section_id)}/f/{_esc(f["id"])}">{_esc(f["name"])}</a>'
                   for f in folder_path(folders, folder_id)]
        children = [f for f in folders if f.get("parent_id") == folder_id]
        sub = "".join(
            f'<div class="tile"><div class="title">&#128193; <a href="/s/{_esc(section_id)}/f/{_esc(c["id"])}">{_esc(c["name"])}</a></div></div>'
            for c in children
        )
        fav_count = len([c for c in cards if (c.get("card_id") or c.get("id")) in set(favs.ids)])
        type_count = len({c.get("type") for c in cards})

        body = f"""{_messages(message, error)}
        <div class="crumbs">{" / ".join(crumbs)}</div>
        <div class="layout">
            <div>{_section_sidebar(section, folders, folder_id)}</div>
            <div>
                <div class="panel">
                    <h2>{_esc(folder["name"])}</h2>
                    <div class="kv"><span class="label">Cards</span><span>{len(cards)}</span></div>
                    <div class="kv"><span class="label">Favorites</span><span>{fav_count}</span></div>
                    <div class="kv"><span class="label">Types</span><span>{type_count}</span></div>
                    {_confirm_form(f"/s/{section_id}/f/{folder_id}/delete", "Delete folder", f"Delete folder {folder['name']}? Subfolders are deleted too.")}
                </div>
                {f'<div class="panel"><h2>Subfolders</h2><div class="grid">{sub}</div></div>' if sub else ""}
                {_filter_bar(f"/s/{section_id}/f/{folder_id}", q, favorites)}
                <div class="panel"><h2>Cards</h2>{_card_grid(cards, set(favs.ids), "cards" if can_reorder else None)}</div>
                <div class="panel"><h2>New card</h2>{_card_form(section_id, parent_choices(folders), folder_id)}</div>
            </div>
        </div>"""
        return _page(folder["name"], body)

    # --- Cards ---

    @app.get("/c/{card_id}", response_class=HTMLResponse)
    async def page_card(request: Request, card_id: str):
        card = queries.get_card(sb, card_id)
        if card is None:
            raise HTTPException(404, "Card not found")
        favs, _ = local_state(request)
        linked = queries.get_card_folders(sb, card_id)
        folder_links = ", ".join(
            f'<a href="/s/{_esc(f["section_id"])}/f/{_esc(f["id"])}">{_esc(f["name"])}</a>' for f in linked
        ) or '<span class="muted">None</span>'
        tags = "".join(f'<span class="tag">{_esc(t)}</span>' for t in (card.get("tags") or [])) or '<span class="muted">None</span>'
        image = f'<img class="thumb" style="max-width:400px" src="{_esc(card["image_url"])}" alt="">' if card.get("image_url") else ""
        star = "Remove from favorites" if favs.is_favorite(card_id) else "Add to favorites"
        body = f"""<div class="panel">
            <h2>{card_type_icon(card.get("type"))} {_esc(card.get("title"))}</h2>
            {image}
            <div class="kv"><span class="label">URL</span><a href="/c/{_esc(card_id)}/open" target="_blank" rel="noopener noreferrer">{_esc(card.get("url"))}</a></div>
            <div class="kv"><span class="label">Type</span><span>{_esc(card.get("type"))}</span></div>
            <div class="kv"><span class="label">Folders</span><span>{folder_links}</span></div>
            <div class="kv"><span class="label">Tags</span><span>{tags}</span></div>
            <p class="desc" style="margin:12px 0">{_esc(card.get("description") or "")}</p>
            <form class="inline-form" method="post" action="/c/{_esc(card_id)}/favorite"><button class="btn" type="submit">{star}</button></form>
            <a class="btn" href="/s/{_esc(card.get('section_id'))}">Back to section</a>
            {_confirm_form(f"/c/{card_id}/delete", "Delete", "Delete this card? This cannot be undone.")}
        </div>"""
        return _page(card.get("title") or "Card", body)

    @app.get("/c/{card_id}/open")
    async def open_card(request: Request, card_id: str):
        card = queries.get_card(sb, card_id)
        if card is None:
            raise HTTPException(404, "Card not found")
        _, recent = local_state(request)
        recent.add(card)
        return RedirectResponse(url=card["url"], status_code=302)

    @app.post("/c/{card_id}/favorite")
    async def page_toggle_favorite(request: Request, card_id: str):
        favs, _ = local_state(request)
        favs.toggle(card_id)
        return RedirectResponse(url=_back(request, f"/c/{card_id}"), status_code=303)

    @app.post("/c/{card_id}/delete")
    async def page_delete_card(request: Request, card_id: str):
        card = queries.delete_card(sb, card_id)
        favs, recent = local_state(request)
        favs.remove(card_id)
        recent.remove(card_id)
        search.invalidate()
        target = f"/s/{card['section_id']}" if card else "/"
        return _redirect(target, message="Card deleted")

    @app.post("/recent/clear")
    async def page_clear_recent(request: Request):
        _, recent = local_state(request)
        recent.clear()
        return _redirect("/", message="Recent list cleared")

    # --- Search ---

    @app.get("/search", response_class=HTMLResponse)
    async def page_search():
        body = f"""<div class="panel">
            <h2>Search</h2>
            <input type="search" id="q" placeholder="Search sections, folders, and cards..." autofocus>
            <p class="muted" id="hint">Type at least {MIN_QUERY_LENGTH} characters to search...</p>
            <div id="results"></div>
        </div>
        <script>
        (function () {{
          var input = document.getElementById('q'), out = document.getElementById('results'),
              hint = document.getElementById('hint'), timer = null;
          function esc(s) {{ var d = document.createElement('div'); d.textContent = s == null ? '' : s; return d.innerHTML; }}
          function render(data) {{
            var html = '';
            (data.sections || []).forEach(function (s) {{ html += '<div class="kv"><a href="/s/' + s.id + '">' + esc(s.name) + '</a><span class="muted">section</span></div>'; }});
            (data.folders || []).forEach(function (f) {{ html += '<div class="kv"><a href="/s/' + f.section_id + '/f/' + f.id + '">' + esc(f.name) + '</a><span class="muted">folder in ' + esc(f.section_name) + '</span></div>'; }});
            (data.cards || []).forEach(function (c) {{ html += '<div class="kv"><a href="/c/' + c.id + '">' + esc(c.title) + '</a><a href="/c/' + c.id + '/open" target="_blank" rel="noopener noreferrer">open</a></div>'; }});
            out.innerHTML = html || '<p class="muted">No results found.</p>';
          }}
          input.addEventListener('input', function () {{
            clearTimeout(timer);
            var q = input.value.trim();
            if (q.length < {MIN_QUERY_LENGTH}) {{ out.innerHTML = ''; hint.style.display = ''; return; }}
            hint.style.display = 'none';
            timer = setTimeout(function () {{
              fetch('/api/search?q=' + encodeURIComponent(q)).then(function (r) {{ return r.json(); }}).then(render);
            }}, {int(SEARCH_DEBOUNCE_SECONDS * 1000)});
          }});
        }})();
        </script>"""
        return _page("Search", body)

    # --- Admin backup ---

    @app.get("/admin/backup", response_class=HTMLResponse)
    async def page_backup(message: Optional[str] = None, error: Optional[str] = None,
                          admin: str = Depends(verify_admin)):
        body = f"""{_messages(message, error)}
        <div class="panel">
            <h2>Export</h2>
            <p class="muted">Download all dashboard data as JSON for backup.</p>
            <a class="btn btn-primary" href="/api/export">Export data</a>
        </div>
        <div class="panel">
            <h2>Import</h2>
            <div class="msg-err">Importing deletes all existing data and replaces it with the file contents.</div>
            <form class="stack" method="post" action="/admin/backup/preview" enctype="multipart/form-data">
                <input type="file" name="file" accept=".json,application/json" required>
                <button class="btn btn-danger" type="submit">Preview import</button>
            </form>
        </div>"""
        return _page("Backup", body)

    @app.post("/admin/backup/preview", response_class=HTMLResponse)
    async def page_import_preview(file: UploadFile = File(...), admin: str = Depends(verify_admin)):
        try:
            payload = queries.validate_import(json.loads(await file.read()))
        except ValueError as e:
            return _redirect("/admin/backup", error=f"Invalid import file: {e}")

        rows = "".join(
            f'<div class="kv"><span class="label">{t}</span><span>{len(payload[t])}</span></div>'
            for t in queries.EXPORT_TABLES
        )
        body = f"""<div class="panel">
            <h2>Import preview: {_esc(file.filename)}</h2>
            {rows}
            <div class="msg-err" style="margin-top:12px">All existing data will be deleted and replaced with these rows.</div>
            <form method="post" action="/admin/backup/import"
                  onsubmit="return confirm('WARNING: this will delete all existing data and replace it with the data in the file. Continue?')">
                <input type="hidden" name="payload" value="{_esc(json.dumps(payload))}">
                <button class="btn btn-danger" type="submit">Import data</button>
                <a class="btn" href="/admin/backup">Cancel</a>
            </form>
        </div>"""
        return _page("Import preview", body)

    @app.post("/admin/backup/import")
    async def page_import(payload: str = Form(...), admin: str = Depends(verify_admin)):
        try:
            counts = queries.import_data(sb, json.loads(payload))
        except (ValueError, queries.DataImportError) as e:
            return _redirect("/admin/backup", error=str(e))
        search.invalidate()
        summary = ", ".join(f"{n} {t}" for t, n in counts.items())
        return _redirect("/admin/backup", message=f"Imported {summary}")
