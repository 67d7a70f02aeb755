"""
Recently opened cards, kept per device.

Newest first, at most MAX_RECENT_ITEMS entries, one entry per card id.
Each entry is the card row plus a visited_at ISO timestamp.
"""

import json
from typing import Callable, Optional

from utils import utc_now_iso

RECENT_KEY = "dashboard-recent"
MAX_RECENT_ITEMS = 10


def _entry_id(item: dict):
    return item.get("id") or item.get("card_id")


class Recent:
    def __init__(self, store):
        self._store = store
        self._items = self._load()

    def _load(self) -> list:
        stored = self._store.get_item(RECENT_KEY)
        if not stored:
            return []
        try:
            items = json.loads(stored)
        except ValueError as e:
            print(f"[Local] Error parsing recent items: {e}")
            return []
        if not isinstance(items, list):
            return []
        return [i for i in items if isinstance(i, dict)]

    def _save(self):
        self._store.set_item(RECENT_KEY, json.dumps(self._items))

    @property
    def items(self) -> list:
        return list(self._items)

    def add(self, card: dict, visited_at: Optional[str] = None) -> list:
        card_id = _entry_id(card)
        entry = {**card, "visited_at": visited_at or utc_now_iso()}
        others = [i for i in self._items if _entry_id(i) != card_id]
        self._items = [entry, *others][:MAX_RECENT_ITEMS]
        self._save()
        return self.items

    def remove(self, card_id) -> None:
        self._items = [
            i for i in self._items
            if i.get("id") != card_id and i.get("card_id") != card_id
        ]
        self._save()

    def clear(self) -> None:
        self._items = []
        self._store.remove_item(RECENT_KEY)

    def cleanup_orphaned(self, exists: Callable[[str], bool]) -> int:
        """Drop entries whose card no longer exists; returns how many went.

        A lookup that raises counts as a missing card.
        """
        if not self._items:
            return 0
        valid = []
        for item in self._items:
            try:
                if exists(_entry_id(item)):
                    valid.append(item)
            except Exception as e:
                print(f"[Local] Removing orphaned recent item {item.get('title') or _entry_id(item)}: {e}")
        removed = len(self._items) - len(valid)
        if removed:
            self._items = valid
            self._save()
            print(f"[Local] Cleaned up {removed} orphaned recent items")
        return removed
