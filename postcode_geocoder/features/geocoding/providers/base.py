"""ジオコーディングプロバイダーのインターフェース"""
from typing import Protocol

from ..domain.models import Coordinate


class GeocodingProvider(Protocol):
    """
    1回の呼び出しで1件を解決する外部ジオコーディングサービス

    失敗は ProviderRejected / ProviderTimeout / ProviderUnavailable / RateLimited
    のいずれかで通知する。
    """

    name: str

    def resolve(self, key: str) -> Coordinate:
        """正規化済み郵便番号を座標に解決"""
        ...

    def resolve_outcode(self, outcode: str) -> Coordinate:
        """アウトコード（郵便区）の重心座標を取得"""
        ...
