"""レート制限ユーティリティ（プロセス内の全ワーカーで共有）"""

import threading
import time
from collections import deque
from typing import Optional

from ..logging.config import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    スライディングウィンドウ方式のレート制限

    任意の period 秒間に付与するトークンを rate_per_second 個以下に抑える。
    トークンバケットと違い、ウィンドウ境界をまたいだバーストも許さない。
    複数スレッドから同時に acquire() してよい。
    """

    def __init__(self, rate_per_second: int, period: float = 1.0):
        """
        Args:
            rate_per_second: period 秒あたりの最大リクエスト数
            period: ウィンドウ幅（秒）
        """
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        if period <= 0:
            raise ValueError("period must be positive")

        self.rate_per_second = rate_per_second
        self.period = period
        self._grants: deque[float] = deque()
        self._lock = threading.Lock()

        logger.debug(
            f"RateLimiter initialized: {rate_per_second} requests / {period:.2f}s"
        )

    def acquire(self, cancel_event: Optional[threading.Event] = None) -> bool:
        """
        トークンを1つ取得（空きが出るまで待機）

        Args:
            cancel_event: セットされたら待機を中断するイベント

        Returns:
            bool: 取得できた場合True、キャンセルされた場合False
        """
        while True:
            if cancel_event is not None and cancel_event.is_set():
                return False

            with self._lock:
                now = time.monotonic()
                self._evict(now)
                if len(self._grants) < self.rate_per_second:
                    self._grants.append(now)
                    return True
                wait_time = self._grants[0] + self.period - now

            logger.debug(f"Rate limiting: waiting {wait_time:.3f}s for a token")
            if cancel_event is not None:
                if cancel_event.wait(wait_time):
                    return False
            else:
                time.sleep(wait_time)

    def available(self) -> int:
        """現在すぐに取得できるトークン数"""
        with self._lock:
            self._evict(time.monotonic())
            return self.rate_per_second - len(self._grants)

    def _evict(self, now: float) -> None:
        # ウィンドウ外になった付与記録を捨てる（ロック保持中に呼ぶ）
        while self._grants and self._grants[0] <= now - self.period:
            self._grants.popleft()
