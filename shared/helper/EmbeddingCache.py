import re
import time
from dataclasses import dataclass


@dataclass
class _Entry:
    embedding: list[float]
    stored_at: float
    hits: int = 0


class EmbeddingCache:
    """Small in-memory cache of question embeddings.

    Keys are normalised (lowercase, trimmed, collapsed whitespace). Entries
    expire after ttl_seconds; when full, the least frequently used entry is
    evicted (oldest first among equals).
    """

    def __init__(self, max_size: int = 100, ttl_seconds: float = 3600.0, clock=time.monotonic):
        self.max_size = max(0, int(max_size))
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def normalise(text: str) -> str:
        return re.sub(r"\s+", " ", text.strip().lower())

    def get(self, text: str) -> list[float] | None:
        key = self.normalise(text)
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() - entry.stored_at > self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            return None
        entry.hits += 1
        self.hits += 1
        return entry.embedding

    def put(self, text: str, embedding: list[float]) -> None:
        if self.max_size == 0:
            return
        key = self.normalise(text)
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict()
        self._entries[key] = _Entry(embedding=embedding, stored_at=self._clock())

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.stored_at > self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        if len(self._entries) < self.max_size:
            return
        victim = min(self._entries.items(), key=lambda item: (item[1].hits, item[1].stored_at))[0]
        del self._entries[victim]

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict:
        return {"size": len(self._entries), "max_size": self.max_size, "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        return len(self._entries)
