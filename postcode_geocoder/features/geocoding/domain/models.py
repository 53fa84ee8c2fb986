"""ジオコーディング機能のドメインモデル"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from ....shared.exceptions.errors import ConfigurationError
from ....shared.utils.datetime_utils import now_utc, parse_iso, to_utc
from .enums import FailureReason, Precision

Number = Union[int, float]


@dataclass(frozen=True)
class GeoInput:
    """ジオコーディング対象（郵便番号 + 任意の数値。値は解釈せずそのまま返す）"""

    postcode: str
    value: Number

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GeoInput":
        """{"postcode": ..., "value": ...} 形式の辞書から生成"""
        return cls(postcode=data.get("postcode") or "", value=data.get("value", 0))


@dataclass(frozen=True)
class Coordinate:
    """地理座標（WGS84）"""

    latitude: float
    longitude: float
    precision: Precision = Precision.POSTCODE


@dataclass(frozen=True)
class GeoResult:
    """ジオコーディング成功結果"""

    postcode: str  # 正規化済み郵便番号
    latitude: float
    longitude: float
    value: Number
    precision: Precision = Precision.POSTCODE

    def to_dict(self) -> dict[str, Any]:
        """JSONレスポンス用の辞書に変換"""
        return {
            "postcode": self.postcode,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "value": self.value,
        }


@dataclass(frozen=True)
class CacheEntry:
    """解決済み座標のキャッシュエントリ（一度書いたら不変）"""

    key: str
    latitude: float
    longitude: float
    resolved_at: datetime = field(default_factory=now_utc)
    precision: Precision = Precision.POSTCODE

    @classmethod
    def from_coordinate(cls, key: str, coordinate: Coordinate) -> "CacheEntry":
        """座標からエントリを生成（resolved_atは現在時刻）"""
        return cls(
            key=key,
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
            precision=coordinate.precision,
        )

    def to_coordinate(self) -> Coordinate:
        """座標に変換"""
        return Coordinate(
            latitude=self.latitude,
            longitude=self.longitude,
            precision=self.precision,
        )

    def to_store_dict(self) -> dict[str, Any]:
        """永続ストア保存用の辞書に変換"""
        return {
            "key": self.key,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "resolved_at": self.resolved_at,
            "precision": self.precision.value,
        }

    @classmethod
    def from_store_dict(cls, data: dict[str, Any]) -> "CacheEntry":
        """永続ストアのデータから生成"""
        resolved_at = data.get("resolved_at")
        if isinstance(resolved_at, str):
            resolved_at = parse_iso(resolved_at)
        elif isinstance(resolved_at, datetime):
            resolved_at = to_utc(resolved_at)
        else:
            resolved_at = now_utc()

        return cls(
            key=data["key"],
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            resolved_at=resolved_at,
            precision=Precision(data.get("precision") or Precision.POSTCODE.value),
        )


@dataclass(frozen=True)
class ResolvedItem:
    """座標が確定した入力（position は元の入力順）"""

    position: int
    item: GeoInput
    key: str
    coordinate: Coordinate


@dataclass(frozen=True)
class ItemFailure:
    """バッチから除外されたアイテム"""

    position: int
    postcode: str
    reason: FailureReason
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "postcode": self.postcode,
            "reason": self.reason.value,
            "detail": self.detail,
        }


@dataclass
class BatchOutcome:
    """バッチジオコーディングの結果（部分成功を含む）"""

    results: list[GeoResult] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)
    total: int = 0
    cache_hits: int = 0  # キャッシュで解決したユニークキー数
    provider_lookups: int = 0  # プロバイダーに送ったユニークキー数
    deadline_exceeded: bool = False

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def success(self) -> bool:
        """1件以上解決できたか"""
        return len(self.results) > 0

    def to_dict(self) -> dict[str, Any]:
        """JSONレスポンス用の辞書に変換"""
        return {
            "results": [result.to_dict() for result in self.results],
            "success": self.success,
            "total": self.total,
            "failed_count": self.failed_count,
            "failures": [failure.to_dict() for failure in self.failures],
            "cache_hits": self.cache_hits,
            "provider_lookups": self.provider_lookups,
            "deadline_exceeded": self.deadline_exceeded,
        }


@dataclass(frozen=True)
class GeocodingConfig:
    """
    ジオコーディングエンジンの設定

    不正な値は生成時に ConfigurationError となる（バッチ全体が失敗する唯一のケース）
    """

    max_concurrent_workers: int = 8
    rate_limit_per_second: int = 10
    provider_timeout_ms: int = 5000
    max_retries: int = 3
    batch_deadline_ms: int = 30000
    retry_backoff_ms: int = 200
    outcode_fallback: bool = True

    def __post_init__(self) -> None:
        positive = {
            "max_concurrent_workers": self.max_concurrent_workers,
            "rate_limit_per_second": self.rate_limit_per_second,
            "provider_timeout_ms": self.provider_timeout_ms,
            "batch_deadline_ms": self.batch_deadline_ms,
        }
        for name, value in positive.items():
            if not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ConfigurationError(
                f"max_retries must be a non-negative integer, got {self.max_retries!r}"
            )
        if not isinstance(self.retry_backoff_ms, int) or self.retry_backoff_ms < 0:
            raise ConfigurationError(
                f"retry_backoff_ms must be a non-negative integer, got {self.retry_backoff_ms!r}"
            )

    @property
    def provider_timeout(self) -> float:
        """プロバイダー呼び出しのタイムアウト（秒）"""
        return self.provider_timeout_ms / 1000

    @property
    def retry_backoff(self) -> float:
        """バックオフの基準時間（秒）"""
        return self.retry_backoff_ms / 1000

    def deadline_seconds(self, deadline_ms: Optional[int] = None) -> float:
        """バッチ期限（秒）。deadline_ms 指定時はそちらを優先"""
        if deadline_ms is None:
            return self.batch_deadline_ms / 1000
        if not isinstance(deadline_ms, int) or deadline_ms <= 0:
            raise ConfigurationError(f"deadline_ms must be a positive integer, got {deadline_ms!r}")
        return deadline_ms / 1000
