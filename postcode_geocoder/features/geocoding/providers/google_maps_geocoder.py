"""Google Maps Geocoding API実装"""
from typing import Any, Optional

import googlemaps
import requests

from ....shared.exceptions.errors import (
    ConfigurationError,
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
    RateLimited,
)
from ....shared.logging.config import get_logger
from ..domain.enums import Precision
from ..domain.models import Coordinate

logger = get_logger(__name__)

_RATE_LIMIT_STATUSES = {"OVER_QUERY_LIMIT", "OVER_DAILY_LIMIT"}
_TRANSIENT_STATUSES = {"UNKNOWN_ERROR"}


def _raise_for_server_error(response: requests.Response, *args: Any, **kwargs: Any) -> None:
    """
    5xx をその場で例外にする（requests のレスポンスフック）

    googlemaps.Client の内部再送を経ずに TransportError として返る。
    """
    if response.status_code >= 500:
        raise requests.HTTPError(
            f"Server error {response.status_code} from {response.url}", response=response
        )


class GoogleMapsGeocoder:
    """Google Maps Geocoding API実装（英国の郵便番号をcomponentsで検索）"""

    name = "google_maps"

    def __init__(
        self,
        api_key: str,
        timeout: float = 5.0,
        region: str = "GB",
        client: Optional[Any] = None,
    ) -> None:
        """
        Args:
            api_key: Google Maps API キー
            timeout: 1回の呼び出しのタイムアウト（秒）
            region: 国コード（デフォルト: "GB"）
            client: googlemaps.Client（テスト用に差し替え可能）
        """
        self.region = region
        if client is not None:
            self.client = client
        else:
            try:
                # 1回の geocode() が1回のHTTPリクエストになるよう、ライブラリ側の再送を止める
                self.client = googlemaps.Client(
                    key=api_key,
                    timeout=timeout,
                    retry_timeout=timeout,
                    retry_over_query_limit=False,
                    requests_kwargs={"hooks": {"response": [_raise_for_server_error]}},
                )
            except Exception as e:
                raise ConfigurationError(f"Failed to initialize Google Maps client: {e}") from e
        logger.info("GoogleMapsGeocoder initialized")

    def resolve(self, key: str) -> Coordinate:
        """
        郵便番号をジオコーディング

        Args:
            key: 正規化済み郵便番号

        Returns:
            Coordinate: 座標

        Raises:
            ProviderRejected: 該当なし、または不正なリクエストの場合
            ProviderTimeout: タイムアウトした場合
            ProviderUnavailable: 通信エラーの場合
            RateLimited: クォータ超過の場合
        """
        return self._geocode(key, Precision.POSTCODE)

    def resolve_outcode(self, outcode: str) -> Coordinate:
        """アウトコード（郵便区）を postal_code コンポーネントとして検索"""
        return self._geocode(outcode, Precision.OUTCODE)

    def _geocode(self, key: str, precision: Precision) -> Coordinate:
        try:
            logger.debug(f"Geocoding postcode: {key}")

            results = self.client.geocode(
                components={"postal_code": key, "country": self.region}
            )

        except googlemaps.exceptions.Timeout as e:
            raise ProviderTimeout(key, "Google Maps request timed out") from e
        except googlemaps.exceptions.ApiError as e:
            if e.status in _RATE_LIMIT_STATUSES:
                raise RateLimited(key, f"Google Maps API error: {e}") from e
            if e.status in _TRANSIENT_STATUSES:
                raise ProviderUnavailable(key, f"Google Maps API error: {e}") from e
            raise ProviderRejected(key, f"Google Maps API error: {e}") from e
        except googlemaps.exceptions.TransportError as e:
            raise ProviderUnavailable(key, f"Google Maps transport error: {e}") from e

        if not results:
            logger.warning(f"No geocoding results for postcode: {key}")
            raise ProviderRejected(key, "no results")

        # 最初の結果を使用
        location = results[0].get("geometry", {}).get("location", {})
        latitude = location.get("lat")
        longitude = location.get("lng")

        if latitude is None or longitude is None:
            logger.warning(f"Invalid geocoding result (missing lat/lng): {key}")
            raise ProviderRejected(key, "result has no coordinates")

        logger.debug(f"Geocoded: {key} -> ({latitude}, {longitude})")
        return Coordinate(latitude=latitude, longitude=longitude, precision=precision)
