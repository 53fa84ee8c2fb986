"""英国郵便番号の検証と正規化"""

import re
from typing import Optional

from ....shared.exceptions.errors import InvalidFormat
from ....shared.utils.text import normalize_text

# 空白除去後の形: アウトコード(2-4文字) + インワードコード(数字1 + 英字2)
_UK_POSTCODE_RE = re.compile(r"^[A-Z]{1,2}\d[A-Z\d]?\d[A-Z]{2}$")

INWARD_LENGTH = 3


def _compact(raw: Optional[str]) -> str:
    text = normalize_text(raw)
    if text is None:
        return ""
    return text.upper().replace(" ", "")


def normalize(raw: Optional[str]) -> str:
    """
    郵便番号を正規形 'OUTWARD INWARD' に変換（例: 'sw1a1aa' -> 'SW1A 1AA'）

    純粋関数で冪等: normalize(normalize(x)) == normalize(x)

    Args:
        raw: 入力された郵便番号

    Returns:
        str: 正規化キー

    Raises:
        InvalidFormat: 空文字、または郵便番号の形をしていない場合
    """
    compact = _compact(raw)
    if not _UK_POSTCODE_RE.match(compact):
        raise InvalidFormat(raw)
    return f"{compact[:-INWARD_LENGTH]} {compact[-INWARD_LENGTH:]}"


def outcode(key: str) -> str:
    """正規化キーからアウトコード（郵便区）を取り出す（例: 'IG7 4NY' -> 'IG7'）"""
    return key.split(" ", 1)[0]
