from __future__ import annotations

import json
import os
from typing import Any, Dict, FrozenSet, Iterable, List


def load_exclusions(path: str, debug_logging: bool = False) -> List[str]:
    try:
        with open(path, 'r') as file:
            data = json.load(file)
    except (FileNotFoundError, json.JSONDecodeError):
        if debug_logging:
            import logging
            logging.warning("Exclusion file not found or is invalid. Starting with an empty exclusion list.")
        return []
    if not isinstance(data, list):
        return []
    return [str(x) for x in data if x is not None and str(x) != '']


def save_exclusions(ids: Iterable[str], path: str) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp_path = path + '.tmp'
    with open(tmp_path, 'w') as file:
        json.dump(list(ids), file, indent=4)
    os.replace(tmp_path, path)


class ExclusionStore:
    """Persisted set of media item ids that automation must never propose.

    Insertion order is kept for display only; membership is a dict lookup.
    Every mutation is written through to disk.
    """

    def __init__(self, path: str, debug_logging: bool = False) -> None:
        self.path = path
        self._ids: Dict[str, None] = dict.fromkeys(load_exclusions(path, debug_logging))

    def __contains__(self, item_id: Any) -> bool:
        return str(item_id) in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def ids(self) -> List[str]:
        return list(self._ids)

    def members(self) -> FrozenSet[str]:
        return frozenset(self._ids)

    def add(self, item_id: str) -> bool:
        key = str(item_id)
        if key in self._ids:
            return False
        self._ids[key] = None
        self._save()
        return True

    def add_many(self, item_ids: Iterable[str]) -> int:
        added = 0
        for item_id in item_ids:
            key = str(item_id)
            if key and key not in self._ids:
                self._ids[key] = None
                added += 1
        if added:
            self._save()
        return added

    def remove(self, item_id: str) -> bool:
        key = str(item_id)
        if key not in self._ids:
            return False
        del self._ids[key]
        self._save()
        return True

    def clear(self) -> int:
        count = len(self._ids)
        self._ids = {}
        self._save()
        return count

    def reload(self) -> None:
        self._ids = dict.fromkeys(load_exclusions(self.path))

    def _save(self) -> None:
        save_exclusions(self._ids, self.path)
