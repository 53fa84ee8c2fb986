"""メモリ内座標リポジトリ（テスト・単一プロセス用）"""
import threading
from typing import Optional

from ...geocoding.domain.models import CacheEntry


class InMemoryCoordinateRepository:
    """プロセス内の辞書に座標を保持するリポジトリ"""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def put(self, entry: CacheEntry) -> bool:
        with self._lock:
            if entry.key in self._entries:
                return False
            self._entries[entry.key] = entry
            return True

    def count(self) -> int:
        with self._lock:
            return len(self._entries)
