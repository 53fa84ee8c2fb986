"""カスタム例外定義"""
from typing import Optional


class GeocoderError(Exception):
    """ジオコーダー基底例外"""

    pass


class InvalidFormat(GeocoderError):
    """郵便番号の形式エラー（ローカルで判定、リトライ不可）"""

    def __init__(self, postcode: Optional[str]):
        self.postcode = postcode
        super().__init__(f"Invalid UK postcode: '{postcode}'")


class ProviderError(GeocoderError):
    """ジオコーディングプロバイダー関連のエラー"""

    retryable = False

    def __init__(self, key: str, detail: str = ""):
        self.key = key
        self.detail = detail
        message = f"{type(self).__name__} for '{key}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ProviderRejected(ProviderError):
    """プロバイダーが該当なしと回答（リトライ不可）"""

    pass


class ProviderTimeout(ProviderError):
    """プロバイダー呼び出しのタイムアウト"""

    retryable = True


class ProviderUnavailable(ProviderError):
    """一時的なプロバイダー障害（5xx、接続リセットなど）"""

    retryable = True


class RateLimited(ProviderError):
    """プロバイダー側のレート制限（429 / OVER_QUERY_LIMIT）"""

    retryable = True

    def __init__(self, key: str, detail: str = "", retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(key, detail)


class OperationCancelled(GeocoderError):
    """バッチの期限切れにより処理が中断された"""

    pass


class HTTPError(GeocoderError):
    """HTTP関連のエラー"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        is_timeout: bool = False,
    ):
        self.status_code = status_code
        self.retry_after = retry_after
        self.is_timeout = is_timeout
        super().__init__(message)


class StorageError(GeocoderError):
    """ストレージ関連のエラー"""

    pass


class ConfigurationError(GeocoderError):
    """設定エラー"""

    pass
