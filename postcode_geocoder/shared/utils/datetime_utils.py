"""日時関連ユーティリティ"""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """現在のUTC時間を取得"""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    datetimeをUTCに変換

    Args:
        dt: 変換対象のdatetime

    Returns:
        UTCのdatetime
    """
    if dt.tzinfo is None:
        # タイムゾーン情報がない場合はUTCとして扱う
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def parse_iso(value: str) -> datetime:
    """ISO 8601文字列をUTCのdatetimeに変換"""
    return to_utc(datetime.fromisoformat(value))
