"""ジオコーディング機能の列挙型"""
from enum import Enum

from ....shared.exceptions.errors import (
    InvalidFormat,
    OperationCancelled,
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
    RateLimited,
)


class Precision(str, Enum):
    """座標の精度"""

    POSTCODE = "postcode"  # 郵便番号単位（完全一致）
    OUTCODE = "outcode"  # 郵便区（アウトコード）の重心


class FailureReason(str, Enum):
    """アイテム単位の失敗理由"""

    INVALID_FORMAT = "invalid_format"
    PROVIDER_REJECTED = "provider_rejected"
    PROVIDER_TIMEOUT = "provider_timeout"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    RATE_LIMITED = "rate_limited"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    UNEXPECTED = "unexpected"

    @classmethod
    def from_error(cls, error: Exception) -> "FailureReason":
        """例外から失敗理由を判定"""
        if isinstance(error, InvalidFormat):
            return cls.INVALID_FORMAT
        if isinstance(error, ProviderRejected):
            return cls.PROVIDER_REJECTED
        if isinstance(error, ProviderTimeout):
            return cls.PROVIDER_TIMEOUT
        if isinstance(error, RateLimited):
            return cls.RATE_LIMITED
        if isinstance(error, ProviderUnavailable):
            return cls.PROVIDER_UNAVAILABLE
        if isinstance(error, OperationCancelled):
            return cls.DEADLINE_EXCEEDED
        return cls.UNEXPECTED
