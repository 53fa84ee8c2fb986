"""ジオコーディングサービス（エンジンの組み立てと公開API）"""

from collections.abc import Iterable
from typing import Any, Optional, Union

from ....infrastructure.config.settings import Settings
from ....infrastructure.gcp.secret_manager import SecretManagerClient
from ....shared.exceptions.errors import ConfigurationError, StorageError
from ....shared.http.client import HTTPClient
from ....shared.http.rate_limiter import RateLimiter
from ....shared.logging.config import get_logger
from ...storage.clients.firestore_client import FirestoreClient
from ...storage.repositories.base import CoordinateRepository
from ...storage.repositories.firestore_coordinate_repository import (
    FirestoreCoordinateRepository,
)
from ...storage.repositories.memory_coordinate_repository import (
    InMemoryCoordinateRepository,
)
from ...storage.repositories.sqlite_coordinate_repository import (
    SqliteCoordinateRepository,
)
from ..cache.resolution_cache import ResolutionCache
from ..domain.models import BatchOutcome, GeocodingConfig, GeoInput
from ..providers.base import GeocodingProvider
from ..providers.google_maps_geocoder import GoogleMapsGeocoder
from ..providers.postcodes_io_provider import PostcodesIoProvider
from ..providers.rate_limited_client import RateLimitedProviderClient
from .batch_scheduler import BatchScheduler

logger = get_logger(__name__)

InputLike = Union[GeoInput, dict[str, Any], tuple[str, Any]]


class GeocodingService:
    """
    ジオコーディングサービス

    キャッシュとレート制限はプロセス内で1つだけ作り、
    このサービスを通じて全バッチで共有する。
    """

    def __init__(
        self,
        provider: GeocodingProvider,
        repository: CoordinateRepository,
        config: Optional[GeocodingConfig] = None,
        show_progress: bool = False,
        resources: Optional[list[Any]] = None,
    ) -> None:
        """
        Args:
            provider: ジオコーディングプロバイダー
            repository: 解決済み座標の永続リポジトリ
            config: エンジン設定（省略時はデフォルト）
            show_progress: プログレスバーを表示するか
            resources: close() で閉じるリソース（HTTPクライアントなど）
        """
        self.config = config or GeocodingConfig()
        self.provider = provider
        self.rate_limiter = RateLimiter(self.config.rate_limit_per_second)
        self.cache = ResolutionCache(repository)
        self.client = RateLimitedProviderClient(
            provider,
            self.rate_limiter,
            max_retries=self.config.max_retries,
            backoff_base=self.config.retry_backoff,
        )
        self.scheduler = BatchScheduler(
            self.cache, self.client, self.config, show_progress=show_progress
        )
        self._resources = resources or []

        logger.info(
            f"GeocodingService initialized: provider={provider.name}, "
            f"rate_limit={self.config.rate_limit_per_second}/s"
        )

    @classmethod
    def from_settings(cls, settings: Settings, show_progress: bool = False) -> "GeocodingService":
        """
        設定からサービスを組み立てる

        Args:
            settings: アプリケーション設定
            show_progress: プログレスバーを表示するか

        Returns:
            GeocodingService: サービス

        Raises:
            ConfigurationError: 設定が不正な場合
        """
        config = settings.geocoding_config()
        resources: list[Any] = []

        if settings.geocoding_provider == "google_maps":
            provider: GeocodingProvider = GoogleMapsGeocoder(
                _resolve_google_maps_api_key(settings),
                timeout=config.provider_timeout,
            )
        else:
            # 各試行をレート制限の対象にするため、アダプターのリトライは無効
            http_client = HTTPClient(
                timeout=config.provider_timeout,
                max_retries=0,
                user_agent=settings.http_user_agent,
                pool_maxsize=config.max_concurrent_workers,
            )
            resources.append(http_client)
            provider = PostcodesIoProvider(http_client, base_url=settings.postcodes_io_base_url)

        repository = _build_repository(settings)
        resources.append(repository)

        return cls(provider, repository, config, show_progress=show_progress, resources=resources)

    def geocode_postcodes(
        self, items: Iterable[InputLike], deadline_ms: Optional[int] = None
    ) -> BatchOutcome:
        """
        郵便番号と値のリストをジオコーディング

        Args:
            items: GeoInput、{"postcode", "value"} の辞書、または (postcode, value)
            deadline_ms: バッチ全体の期限（ミリ秒）

        Returns:
            BatchOutcome: 成功した結果と失敗件数
        """
        inputs = [_to_geo_input(item) for item in items]
        return self.scheduler.geocode_batch(inputs, deadline_ms=deadline_ms)

    def get_cache_stats(self) -> dict[str, Any]:
        """
        キャッシュ統計を取得

        Returns:
            dict[str, Any]: メモリ層の統計と永続リポジトリの件数
        """
        stats: dict[str, Any] = dict(self.cache.get_cache_stats())
        stats["provider"] = self.provider.name
        try:
            stats["stored_entries"] = self.cache.repository.count()
        except StorageError as e:
            logger.warning(f"Failed to count stored cache entries: {e}")
            stats["stored_entries"] = None
        stats["rate_limit_available"] = self.rate_limiter.available()
        return stats

    def close(self) -> None:
        """HTTPセッションやDB接続を閉じる"""
        for resource in self._resources:
            close = getattr(resource, "close", None)
            if callable(close):
                close()
        self._resources = []

    def __enter__(self) -> "GeocodingService":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def _to_geo_input(item: InputLike) -> GeoInput:
    if isinstance(item, GeoInput):
        return item
    if isinstance(item, dict):
        return GeoInput.from_dict(item)
    if isinstance(item, tuple) and len(item) == 2:
        return GeoInput(postcode=item[0], value=item[1])
    raise TypeError(f"Unsupported geocoding input: {item!r}")


def _build_repository(settings: Settings) -> CoordinateRepository:
    """設定に応じて永続リポジトリを生成"""
    backend = settings.geocoding_cache_backend
    if backend == "memory":
        return InMemoryCoordinateRepository()
    if backend == "firestore":
        client = FirestoreClient(
            project_id=settings.gcp_project_id,
            database_id=settings.firestore_database_id,
        )
        return FirestoreCoordinateRepository(client, settings.firestore_cache_collection)
    return SqliteCoordinateRepository(settings.geocoding_cache_sqlite_path)


def _resolve_google_maps_api_key(settings: Settings) -> str:
    """ローカル開発では設定値、それ以外はSecret ManagerからAPIキーを取得"""
    if settings.google_maps_api_key:
        return settings.google_maps_api_key
    if settings.is_development:
        raise ConfigurationError(
            "GOOGLE_MAPS_API_KEY must be set when using google_maps in development"
        )
    secret_manager = SecretManagerClient(settings.gcp_project_id or "")
    return secret_manager.get_secret(settings.google_maps_api_key_secret_name)
