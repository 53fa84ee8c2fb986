"""解決済み座標キャッシュ（メモリ内リードスルー + 永続リポジトリ）"""

import threading
from typing import Optional

from ....shared.exceptions.errors import StorageError
from ....shared.logging.config import get_logger
from ...storage.repositories.base import CoordinateRepository
from ..domain.models import CacheEntry, Coordinate

logger = get_logger(__name__)


class ResolutionCache:
    """
    正規化郵便番号 -> 座標 のキャッシュ

    同じ郵便番号のAPI呼び出しを繰り返さないため、
    プロセス内のメモリ層と永続リポジトリの二段で保持する。
    郵便番号の座標は変わらないので、エビクションは行わない。
    """

    def __init__(self, repository: CoordinateRepository) -> None:
        """
        Args:
            repository: 永続リポジトリ
        """
        self.repository = repository
        self._memory: dict[str, Coordinate] = {}
        self._lock = threading.Lock()
        self.hit_count = 0
        self.miss_count = 0

        logger.info(f"ResolutionCache initialized: repository={type(repository).__name__}")

    def get(self, key: str) -> Optional[Coordinate]:
        """
        キャッシュから座標を取得（ネットワークには出ない）

        Args:
            key: 正規化済み郵便番号

        Returns:
            Optional[Coordinate]: 座標（キャッシュにない場合はNone）
        """
        with self._lock:
            coordinate = self._memory.get(key)
            if coordinate is not None:
                self.hit_count += 1
                logger.debug(f"Cache hit (memory): {key}")
                return coordinate

        try:
            entry = self.repository.get(key)
        except StorageError as e:
            logger.warning(f"Cache repository read failed for {key}, treating as miss: {e}")
            entry = None

        with self._lock:
            if entry is None:
                self.miss_count += 1
                logger.debug(f"Cache miss: {key}")
                return None

            self.hit_count += 1
            coordinate = self._memory.setdefault(key, entry.to_coordinate())

        logger.debug(f"Cache hit (repository): {key}")
        return coordinate

    def put(self, key: str, coordinate: Coordinate) -> None:
        """
        座標をキャッシュに保存（冪等）

        同じキーへの同時書き込みは最初の値が残る。
        プロバイダーはキーごとに決定的なので、重複書き込みは無害。

        Args:
            key: 正規化済み郵便番号
            coordinate: 座標
        """
        with self._lock:
            if key in self._memory:
                return
            self._memory[key] = coordinate

        try:
            self.repository.put(CacheEntry.from_coordinate(key, coordinate))
        except StorageError as e:
            logger.warning(f"Cache repository write failed for {key}, kept in memory only: {e}")

    def get_cache_stats(self) -> dict[str, float]:
        """
        キャッシュ統計を取得

        Returns:
            dict[str, float]: キャッシュ統計（サイズ、ヒット数、ミス数、ヒット率）
        """
        with self._lock:
            total_requests = self.hit_count + self.miss_count
            hit_rate = (self.hit_count / total_requests * 100) if total_requests > 0 else 0.0

            return {
                "cache_size": len(self._memory),
                "hit_count": self.hit_count,
                "miss_count": self.miss_count,
                "total_requests": total_requests,
                "hit_rate_percent": round(hit_rate, 2),
            }
