"""座標リポジトリのインターフェース"""
from typing import Optional, Protocol

from ...geocoding.domain.models import CacheEntry


class CoordinateRepository(Protocol):
    """
    正規化郵便番号 -> 座標 の永続ストア

    put() は冪等: 既存キーへの書き込みは何もしない（最初の書き込みが勝つ）
    """

    def get(self, key: str) -> Optional[CacheEntry]:
        ...

    def put(self, entry: CacheEntry) -> bool:
        ...

    def count(self) -> int:
        ...
