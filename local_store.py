"""
Device-local key-value storage for favorites and recent items.

These caches belong to one device (browser), not to the shared database.
Values are JSON-encoded strings, the same contract as browser
localStorage. Devices are told apart by the device_id cookie.
"""

import json
import os
import re
import threading


class LocalStore:
    """Interface: string keys to JSON-encoded string values."""

    def get_item(self, key: str):
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(LocalStore):
    def __init__(self, initial=None):
        self._items = dict(initial or {})

    def get_item(self, key):
        return self._items.get(key)

    def set_item(self, key, value):
        self._items[key] = value

    def remove_item(self, key):
        self._items.pop(key, None)


_file_locks = {}
_file_locks_guard = threading.Lock()


def _lock_for(path):
    with _file_locks_guard:
        return _file_locks.setdefault(path, threading.Lock())


class JsonFileStore(LocalStore):
    """One JSON object per device at <directory>/<device_id>.json."""

    def __init__(self, directory: str, device_id: str):
        safe_id = re.sub(r'[^A-Za-z0-9_-]', '', device_id or '') or 'default'
        self.path = os.path.join(directory, f"{safe_id}.json")
        self._directory = directory

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            print(f"[Local] Unreadable state file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        os.makedirs(self._directory, exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp, self.path)

    def get_item(self, key):
        with _lock_for(self.path):
            return self._read().get(key)

    def set_item(self, key, value):
        with _lock_for(self.path):
            data = self._read()
            data[key] = value
            self._write(data)

    def remove_item(self, key):
        with _lock_for(self.path):
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)


def file_store_factory(directory: str):
    """Build a device_id -> JsonFileStore factory rooted at directory."""
    def factory(device_id: str) -> LocalStore:
        return JsonFileStore(directory, device_id)
    return factory
