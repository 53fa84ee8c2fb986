"""テスト共通のフィクスチャ"""
import threading
import time
from collections import deque
from typing import Optional

import pytest

from postcode_geocoder.features.geocoding.cache.resolution_cache import ResolutionCache
from postcode_geocoder.features.geocoding.domain.enums import Precision
from postcode_geocoder.features.geocoding.domain.models import Coordinate, GeocodingConfig
from postcode_geocoder.features.geocoding.providers.rate_limited_client import (
    RateLimitedProviderClient,
)
from postcode_geocoder.features.geocoding.services.batch_scheduler import BatchScheduler
from postcode_geocoder.features.storage.repositories.memory_coordinate_repository import (
    InMemoryCoordinateRepository,
)
from postcode_geocoder.shared.exceptions.errors import ProviderRejected
from postcode_geocoder.shared.http.rate_limiter import RateLimiter

BUCKINGHAM_PALACE = Coordinate(51.5014, -0.1419)


class FakeProvider:
    """
    テスト用プロバイダー（スレッドセーフ）

    - coordinates にない郵便番号は ProviderRejected
    - errors に積んだ例外は先頭から1回ずつ送出
    - 同時実行数の最大値を記録
    """

    name = "fake"

    def __init__(
        self,
        coordinates: Optional[dict[str, Coordinate]] = None,
        outcodes: Optional[dict[str, Coordinate]] = None,
        delay: float = 0.0,
    ) -> None:
        self.coordinates = coordinates if coordinates is not None else {}
        self.outcodes = outcodes if outcodes is not None else {}
        self.delay = delay
        self.errors: deque[Exception] = deque()
        self.calls: list[str] = []
        self.outcode_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls) + len(self.outcode_calls)

    def resolve(self, key: str) -> Coordinate:
        with self._lock:
            self.calls.append(key)
        return self._run(key, self.coordinates, Precision.POSTCODE)

    def resolve_outcode(self, outcode: str) -> Coordinate:
        with self._lock:
            self.outcode_calls.append(outcode)
        return self._run(outcode, self.outcodes, Precision.OUTCODE)

    def _run(self, key: str, table: dict[str, Coordinate], precision: Precision) -> Coordinate:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            error = self.errors.popleft() if self.errors else None
        try:
            if self.delay:
                time.sleep(self.delay)
            if error is not None:
                raise error
            coordinate = table.get(key)
            if coordinate is None:
                raise ProviderRejected(key, "no result")
            return Coordinate(coordinate.latitude, coordinate.longitude, precision)
        finally:
            with self._lock:
                self.in_flight -= 1


def build_scheduler(
    provider: FakeProvider,
    config: Optional[GeocodingConfig] = None,
    repository: Optional[InMemoryCoordinateRepository] = None,
) -> BatchScheduler:
    """FakeProvider を使ったスケジューラーを組み立てる"""
    config = config or GeocodingConfig(rate_limit_per_second=1000, retry_backoff_ms=1)
    cache = ResolutionCache(repository or InMemoryCoordinateRepository())
    client = RateLimitedProviderClient(
        provider,
        RateLimiter(config.rate_limit_per_second),
        max_retries=config.max_retries,
        backoff_base=config.retry_backoff,
    )
    return BatchScheduler(cache, client, config)


@pytest.fixture
def fake_provider() -> FakeProvider:
    """SW1A 1AA だけを知っているプロバイダー"""
    return FakeProvider({"SW1A 1AA": BUCKINGHAM_PALACE})


@pytest.fixture
def make_provider() -> type[FakeProvider]:
    """FakeProvider クラスを返す（テストごとに座標表を指定して生成）"""
    return FakeProvider


@pytest.fixture
def make_scheduler():
    """build_scheduler を返す"""
    return build_scheduler
