"""解決済みアイテムを結果リストに組み立てる"""
from collections.abc import Iterable

from ..domain.models import GeoResult, ResolvedItem


def assemble(resolved: Iterable[ResolvedItem]) -> list[GeoResult]:
    """
    座標を元の入力の value と結合し、入力順に並べ直す

    ワーカーの完了順は不定なので、position でソートする。
    value には一切手を加えない（集計は下流の責務）。

    Args:
        resolved: 座標が確定したアイテム

    Returns:
        list[GeoResult]: 入力順の結果
    """
    ordered = sorted(resolved, key=lambda r: r.position)
    return [
        GeoResult(
            postcode=r.key,
            latitude=r.coordinate.latitude,
            longitude=r.coordinate.longitude,
            value=r.item.value,
            precision=r.coordinate.precision,
        )
        for r in ordered
    ]
