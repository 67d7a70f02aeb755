"""
Starred cards, kept per device.
"""

import json

FAVORITES_KEY = "dashboard-favorites"


class Favorites:
    def __init__(self, store):
        self._store = store
        self._ids = self._load()

    def _load(self) -> list:
        stored = self._store.get_item(FAVORITES_KEY)
        if not stored:
            return []
        try:
            ids = json.loads(stored)
        except ValueError as e:
            print(f"[Local] Error parsing favorites: {e}")
            return []
        return ids if isinstance(ids, list) else []

    def _save(self):
        self._store.set_item(FAVORITES_KEY, json.dumps(self._ids))

    @property
    def ids(self) -> list:
        return list(self._ids)

    def is_favorite(self, card_id) -> bool:
        return card_id in self._ids

    def add(self, card_id):
        if card_id not in self._ids:
            self._ids.append(card_id)
            self._save()

    def remove(self, card_id):
        self._ids = [i for i in self._ids if i != card_id]
        self._save()

    def toggle(self, card_id) -> bool:
        """Flip membership; returns True when the card is now a favorite."""
        if self.is_favorite(card_id):
            self.remove(card_id)
            return False
        self.add(card_id)
        return True
