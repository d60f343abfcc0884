"""Identity-keyed cache for scene objects (elements, library items, layers)."""

from __future__ import annotations

import copy
from typing import Any, Dict, Generic, Iterator, Optional, Tuple, TypeVar

V = TypeVar("V")


class IdentityCache(Generic[V]):
    """
    Maps objects to values by reference identity, never by equality.

    The key object is kept alive alongside its value so its ``id`` cannot be
    reused by another object while the cache exists.
    """

    def __init__(self):
        self._entries: Dict[int, Tuple[Any, V]] = {}

    def get(self, key: Any, default: Optional[V] = None) -> Optional[V]:
        entry = self._entries.get(id(key))
        return entry[1] if entry is not None else default

    def set(self, key: Any, value: V):
        self._entries[id(key)] = (key, value)

    def setdefault(self, key: Any, value: V) -> V:
        entry = self._entries.get(id(key))
        if entry is None:
            self.set(key, value)
            return value
        return entry[1]

    def values(self) -> Iterator[V]:
        return (value for _, value in self._entries.values())

    def __contains__(self, key: Any) -> bool:
        return id(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __deepcopy__(self, memo) -> "IdentityCache[V]":
        # Keys are scene objects and keep their identity; only values are copied
        clone: IdentityCache[V] = IdentityCache()
        for key_id, (key, value) in self._entries.items():
            clone._entries[key_id] = (key, copy.deepcopy(value, memo))
        return clone
