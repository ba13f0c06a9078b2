"""Best-effort read-through cache of OCR text and summaries per page.

Entries expire after a maximum age. An expired entry is dropped from the
cache only; the persisted record stays the source of truth.
"""
import abc
import hashlib
import json
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from utils.logger import setup_logger
import config

logger = setup_logger(__name__)

Clock = Callable[[], float]


class CachePort(abc.ABC):
    """get / set / invalidate over (book, page) entries."""

    @abc.abstractmethod
    def get(self, book_id: str, page_number: int) -> Optional[Dict[str, Any]]:
        """Return ``{"ocr", "summary", "timestamp"}`` or None when absent or stale."""
        pass

    @abc.abstractmethod
    def set(self, book_id: str, page_number: int, ocr: str, summary: Optional[str] = None) -> None:
        pass

    @abc.abstractmethod
    def invalidate(self, book_id: str, page_number: int) -> None:
        pass

    @abc.abstractmethod
    def clear(self, book_id: Optional[str] = None) -> int:
        """Drop every entry, or every entry of one book. Returns the count removed."""
        pass


class InMemoryCache(CachePort):
    """Dictionary backed cache, used when nothing should touch disk."""

    def __init__(self, max_age: float = config.CACHE_MAX_AGE_SECONDS, clock: Clock = time.time):
        self.max_age = max_age
        self.clock = clock
        self._entries: Dict[tuple, Dict[str, Any]] = {}

    def get(self, book_id: str, page_number: int) -> Optional[Dict[str, Any]]:
        entry = self._entries.get((book_id, page_number))
        if entry is None:
            return None
        if self.clock() - entry["timestamp"] > self.max_age:
            self.invalidate(book_id, page_number)
            return None
        return dict(entry)

    def set(self, book_id: str, page_number: int, ocr: str, summary: Optional[str] = None) -> None:
        self._entries[(book_id, page_number)] = {
            "ocr": ocr,
            "summary": summary,
            "timestamp": self.clock(),
        }

    def invalidate(self, book_id: str, page_number: int) -> None:
        self._entries.pop((book_id, page_number), None)

    def clear(self, book_id: Optional[str] = None) -> int:
        keys = [k for k in self._entries if book_id is None or k[0] == book_id]
        for key in keys:
            del self._entries[key]
        return len(keys)


class JsonFileCache(CachePort):
    """One JSON file per page under a cache directory."""

    def __init__(
        self,
        cache_dir: Path = config.CACHE_DIR,
        max_age: float = config.CACHE_MAX_AGE_SECONDS,
        clock: Clock = time.time,
    ):
        """Initialize cache.

        Args:
            cache_dir: Directory to store cache entries
            max_age: Seconds after which an entry is stale
            clock: Returns the current time in seconds
        """
        self.cache_dir = cache_dir
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_age = max_age
        self.clock = clock

    def _book_prefix(self, book_id: str) -> str:
        # Sanitized id plus a digest of the raw id
        digest = hashlib.sha1(book_id.encode("utf-8")).hexdigest()[:8]
        return f"{re.sub(r'[^A-Za-z0-9_-]', '_', book_id)}_{digest}"

    def _entry_file(self, book_id: str, page_number: int) -> Path:
        return self.cache_dir / f"{self._book_prefix(book_id)}_page_{page_number}.json"

    def get(self, book_id: str, page_number: int) -> Optional[Dict[str, Any]]:
        entry_file = self._entry_file(book_id, page_number)
        if not entry_file.exists():
            return None

        try:
            with open(entry_file, 'r', encoding='utf-8') as f:
                entry = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable cache entry {entry_file.name}, dropping it: {e}")
            self.invalidate(book_id, page_number)
            return None

        if self.clock() - entry.get("timestamp", 0) > self.max_age:
            logger.info(f"Cache entry for page {page_number} is stale")
            self.invalidate(book_id, page_number)
            return None
        return entry

    def set(self, book_id: str, page_number: int, ocr: str, summary: Optional[str] = None) -> None:
        entry = {"ocr": ocr, "summary": summary, "timestamp": self.clock()}
        try:
            with open(self._entry_file(book_id, page_number), 'w', encoding='utf-8') as f:
                json.dump(entry, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.warning(f"Failed to write cache entry for page {page_number}: {e}")

    def invalidate(self, book_id: str, page_number: int) -> None:
        entry_file = self._entry_file(book_id, page_number)
        if entry_file.exists():
            entry_file.unlink()

    def clear(self, book_id: Optional[str] = None) -> int:
        pattern = f"{self._book_prefix(book_id)}_page_*.json" if book_id else "*.json"
        removed = 0
        for entry_file in self.cache_dir.glob(pattern):
            entry_file.unlink()
            removed += 1
        logger.info(f"Cleared {removed} cache entries")
        return removed
