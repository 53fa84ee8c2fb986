"""アプリケーション設定（Pydantic Settings）"""
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ...features.geocoding.domain.models import GeocodingConfig


class Settings(BaseSettings):
    """アプリケーション設定"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Project
    project_name: str = Field(
        default="postcode-geocoder",
        description="プロジェクト名",
    )
    environment: str = Field(
        default="development",
        description="環境 (development, staging, production)",
    )

    # GCP
    gcp_project_id: Optional[str] = Field(
        default=None,
        description="GCPプロジェクトID（Firestore / Secret Manager / Cloud Logging 使用時に必要）",
    )

    # Provider
    geocoding_provider: Literal["postcodes_io", "google_maps"] = Field(
        default="postcodes_io",
        description="ジオコーディングプロバイダー",
    )
    postcodes_io_base_url: str = Field(
        default="https://api.postcodes.io",
        description="postcodes.io のベースURL",
    )
    google_maps_api_key: Optional[str] = Field(
        default=None,
        description="Google Maps API Key（ローカル開発用）",
    )
    google_maps_api_key_secret_name: str = Field(
        default="google-maps-api-key",
        description="Google Maps API KeyのSecret Manager名",
    )
    http_user_agent: str = Field(
        default="postcode-geocoder/1.0 (+lead-dashboard)",
        description="プロバイダー呼び出しのUser-Agent",
    )

    # Engine
    max_concurrent_workers: int = Field(
        default=8,
        description="キャッシュミスを解決するワーカー数（同時API呼び出しの上限）",
    )
    rate_limit_per_second: int = Field(
        default=10,
        description="プロバイダー呼び出しのレート制限（リクエスト/秒、リトライを含む）",
    )
    provider_timeout_ms: int = Field(
        default=5000,
        description="1回のプロバイダー呼び出しのタイムアウト（ミリ秒）",
    )
    max_retries: int = Field(
        default=3,
        description="一時的な失敗の最大リトライ回数",
    )
    retry_backoff_ms: int = Field(
        default=200,
        description="指数バックオフの基準時間（ミリ秒）",
    )
    batch_deadline_ms: int = Field(
        default=30000,
        description="バッチ全体の期限（ミリ秒）",
    )
    outcode_fallback_enabled: bool = Field(
        default=True,
        description="郵便番号が見つからない場合に郵便区の重心で代替するか",
    )

    # Cache
    geocoding_cache_backend: Literal["memory", "sqlite", "firestore"] = Field(
        default="sqlite",
        description="解決済み座標の永続化先",
    )
    geocoding_cache_sqlite_path: str = Field(
        default="geocode_cache.db",
        description="SQLiteキャッシュのパス",
    )
    firestore_database_id: str = Field(
        default="(default)",
        description="FirestoreデータベースID",
    )
    firestore_cache_collection: str = Field(
        default="geocode_cache",
        description="ジオコーディングキャッシュのコレクション名",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="ログレベル (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    gcp_logging_enabled: bool = Field(
        default=False,
        description="Cloud Loggingを有効にするか",
    )

    # Cloud Run
    port: int = Field(
        default=8080,
        description="HTTPサーバーのポート番号",
    )

    def geocoding_config(self) -> GeocodingConfig:
        """
        エンジン設定を生成

        Raises:
            ConfigurationError: 値が不正な場合
        """
        return GeocodingConfig(
            max_concurrent_workers=self.max_concurrent_workers,
            rate_limit_per_second=self.rate_limit_per_second,
            provider_timeout_ms=self.provider_timeout_ms,
            max_retries=self.max_retries,
            batch_deadline_ms=self.batch_deadline_ms,
            retry_backoff_ms=self.retry_backoff_ms,
            outcode_fallback=self.outcode_fallback_enabled,
        )

    @property
    def is_development(self) -> bool:
        """開発環境かどうか"""
        return self.environment.lower() == "development"
