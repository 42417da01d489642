"""
Per-UF memoization of city lookups.
City lists are near-static reference data, so entries never expire.
"""
import threading
from typing import Dict, List, Optional, Tuple

from caixasim.caixa.schemas import CityOption


class CityCache:
    """Process-wide cache keyed by upper-cased UF. Reads are lock-free, writes are serialized."""

    def __init__(self):
        self._entries: Dict[str, Tuple[CityOption, ...]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(uf: str) -> str:
        return uf.strip().upper()

    def get(self, uf: str) -> Optional[List[CityOption]]:
        entry = self._entries.get(self._key(uf))
        return list(entry) if entry is not None else None

    def put(self, uf: str, cities: List[CityOption]) -> None:
        with self._lock:
            self._entries[self._key(uf)] = tuple(cities)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
