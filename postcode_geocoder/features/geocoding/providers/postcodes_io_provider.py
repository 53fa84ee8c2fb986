"""postcodes.io ジオコーディング実装（無料・認証不要）"""
from typing import Any
from urllib.parse import quote

from ....shared.exceptions.errors import (
    HTTPError,
    ProviderError,
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
    RateLimited,
)
from ....shared.http.client import HTTPClient
from ....shared.logging.config import get_logger
from ..domain.enums import Precision
from ..domain.models import Coordinate

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.postcodes.io"


class PostcodesIoProvider:
    """postcodes.io API実装"""

    name = "postcodes_io"

    def __init__(self, http_client: HTTPClient, base_url: str = DEFAULT_BASE_URL) -> None:
        """
        Args:
            http_client: 共有HTTPクライアント（アダプターのリトライは無効にしておく）
            base_url: APIのベースURL
        """
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        logger.info(f"PostcodesIoProvider initialized: {self.base_url}")

    def resolve(self, key: str) -> Coordinate:
        """
        郵便番号をジオコーディング

        Args:
            key: 正規化済み郵便番号（例: "SW1A 1AA"）

        Returns:
            Coordinate: 座標

        Raises:
            ProviderRejected: 該当する郵便番号がない場合
            ProviderTimeout: タイムアウトした場合
            ProviderUnavailable: 一時的な障害の場合
            RateLimited: レート制限された場合
        """
        body = self._get(f"{self.base_url}/postcodes/{quote(key)}", key)
        return self._to_coordinate(body, key, Precision.POSTCODE)

    def resolve_outcode(self, outcode: str) -> Coordinate:
        """
        アウトコード（郵便区）の重心座標を取得

        Args:
            outcode: アウトコード（例: "IG7"）

        Returns:
            Coordinate: 郵便区の重心座標（precision=OUTCODE）
        """
        body = self._get(f"{self.base_url}/outcodes/{quote(outcode)}", outcode)
        return self._to_coordinate(body, outcode, Precision.OUTCODE)

    def _get(self, url: str, key: str) -> Any:
        try:
            return self.http_client.get_json(url)
        except HTTPError as e:
            raise _translate_http_error(e, key) from e

    def _to_coordinate(self, body: Any, key: str, precision: Precision) -> Coordinate:
        if not isinstance(body, dict):
            raise ProviderUnavailable(key, "unexpected response body")

        result = body.get("result")
        if not result:
            raise ProviderRejected(key, "no result")

        latitude = result.get("latitude")
        longitude = result.get("longitude")

        # 郵便番号は存在するが座標が未登録のケース
        if latitude is None or longitude is None:
            raise ProviderRejected(key, "result has no coordinates")

        logger.debug(f"Geocoded: {key} -> ({latitude}, {longitude})")
        return Coordinate(
            latitude=float(latitude),
            longitude=float(longitude),
            precision=precision,
        )


def _translate_http_error(error: HTTPError, key: str) -> ProviderError:
    """HTTPErrorをプロバイダーエラーに変換"""
    if error.is_timeout:
        return ProviderTimeout(key, str(error))
    status = error.status_code
    if status == 429:
        return RateLimited(key, str(error), retry_after=error.retry_after)
    if status is not None and 400 <= status < 500:
        return ProviderRejected(key, f"status {status}")
    # 接続エラー・5xx・2xxでJSONでないボディ（プロキシのエラーページなど）
    return ProviderUnavailable(key, str(error))
