"""Recent free-text search terms, shared explicitly between comparison sessions."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional


@dataclass
class RecentSearch:
    term: str
    count: int
    timestamp: float

    def to_dict(self):
        return {"term": self.term, "count": self.count, "timestamp": self.timestamp}


class RecentSearchStore:
    def __init__(self, max_size: int = 10, clock: Callable[[], float] = time.time) -> None:
        if max_size < 1:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._clock = clock
        self._items: List[RecentSearch] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def record(self, term: str) -> Optional[RecentSearch]:
        """Add or refresh a term. Matching is case-insensitive; blank terms are ignored."""
        cleaned = (term or "").strip()
        if not cleaned:
            return None
        now = self._clock()
        with self._lock:
            for item in self._items:
                if item.term.lower() == cleaned.lower():
                    item.count += 1
                    item.timestamp = now
                    return item
            item = RecentSearch(term=cleaned, count=1, timestamp=now)
            self._items.append(item)
            while len(self._items) > self.max_size:
                oldest = min(self._items, key=lambda entry: entry.timestamp)
                self._items.remove(oldest)
            return item

    def recent(self, limit: Optional[int] = None) -> List[RecentSearch]:
        with self._lock:
            ordered = sorted(self._items, key=lambda entry: entry.timestamp, reverse=True)
        return ordered[:limit] if limit is not None else ordered

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
