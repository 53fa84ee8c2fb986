"""リード価値マップ用のポイント集計（ジオコーディング結果の下流）"""
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ..geocoding.domain.models import GeoResult, Number


@dataclass
class MapPoint:
    """マップ上の1点（郵便番号ごとの合計値）"""

    postcode: str
    lat: float
    lng: float
    value: Number

    def to_dict(self) -> dict[str, Any]:
        return {"postcode": self.postcode, "lat": self.lat, "lng": self.lng, "value": self.value}


def build_map_points(results: Iterable[GeoResult]) -> list[MapPoint]:
    """
    同じ郵便番号の結果をまとめ、value を合計する

    順序は郵便番号の初出順。

    Args:
        results: ジオコーディング結果

    Returns:
        list[MapPoint]: マップ表示用のポイント
    """
    points: dict[str, MapPoint] = {}
    for result in results:
        point = points.get(result.postcode)
        if point is None:
            points[result.postcode] = MapPoint(
                postcode=result.postcode,
                lat=result.latitude,
                lng=result.longitude,
                value=result.value,
            )
        else:
            point.value += result.value
    return list(points.values())
