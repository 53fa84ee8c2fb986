"""レート制限・リトライ付きプロバイダークライアント"""

import random
import threading
import time
from typing import Callable, Optional

from ....shared.exceptions.errors import OperationCancelled, ProviderError
from ....shared.http.rate_limiter import RateLimiter
from ....shared.logging.config import get_logger
from ..domain.models import Coordinate
from .base import GeocodingProvider

logger = get_logger(__name__)


class RateLimitedProviderClient:
    """
    プロバイダー呼び出しをレート制限とリトライで包むクライアント

    Features:
    - 全ワーカー共有のRateLimiterからトークンを取得してから呼び出す（リトライも同様）
    - 一時的な失敗（タイムアウト、5xx、429）は指数バックオフでリトライ
    - ProviderRejected は即座に失敗（リトライしない）
    - 待機中にcancel_eventがセットされたら OperationCancelled
    """

    def __init__(
        self,
        provider: GeocodingProvider,
        rate_limiter: RateLimiter,
        max_retries: int = 3,
        backoff_base: float = 0.2,
        backoff_max: float = 10.0,
    ) -> None:
        """
        Args:
            provider: ジオコーディングプロバイダー
            rate_limiter: プロセス内で共有するレート制限
            max_retries: 最大リトライ回数（初回呼び出しは含まない）
            backoff_base: バックオフの基準時間（秒）
            backoff_max: バックオフの上限（秒）
        """
        self.provider = provider
        self.rate_limiter = rate_limiter
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max

        logger.info(
            f"RateLimitedProviderClient initialized: provider={provider.name}, "
            f"max_retries={max_retries}, backoff_base={backoff_base}s"
        )

    def resolve(
        self, key: str, cancel_event: Optional[threading.Event] = None
    ) -> Coordinate:
        """
        郵便番号を解決

        Args:
            key: 正規化済み郵便番号
            cancel_event: バッチ期限切れで中断するためのイベント

        Returns:
            Coordinate: 座標

        Raises:
            ProviderRejected: 該当なし（リトライしない）
            ProviderTimeout / ProviderUnavailable / RateLimited: リトライ上限に達した場合
            OperationCancelled: 中断された場合
        """
        return self._call_with_retries(self.provider.resolve, key, cancel_event)

    def resolve_outcode(
        self, outcode: str, cancel_event: Optional[threading.Event] = None
    ) -> Coordinate:
        """アウトコードの重心座標を取得（リトライ・レート制限はresolveと同じ）"""
        return self._call_with_retries(self.provider.resolve_outcode, outcode, cancel_event)

    def _call_with_retries(
        self,
        call: Callable[[str], Coordinate],
        key: str,
        cancel_event: Optional[threading.Event],
    ) -> Coordinate:
        attempt = 0
        while True:
            if not self.rate_limiter.acquire(cancel_event):
                raise OperationCancelled(f"Cancelled while waiting for a token: {key}")

            try:
                logger.debug(f"Provider call: {key} (attempt {attempt + 1})")
                return call(key)
            except ProviderError as e:
                if not e.retryable:
                    logger.info(f"Provider rejected {key}: {e.detail or e}")
                    raise
                if attempt >= self.max_retries:
                    logger.warning(
                        f"Giving up on {key} after {attempt + 1} attempts: {e}"
                    )
                    raise

                delay = self._backoff_delay(attempt, getattr(e, "retry_after", None))
                logger.warning(
                    f"Transient provider error for {key} "
                    f"(attempt {attempt + 1}/{self.max_retries + 1}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                self._sleep(delay, cancel_event, key)
                attempt += 1

    def _backoff_delay(self, attempt: int, retry_after: Optional[float]) -> float:
        delay = min(self.backoff_base * (2**attempt), self.backoff_max)
        # 同時にリトライするワーカーが揃わないようジッターを加える
        delay += random.uniform(0, delay * 0.1)
        if retry_after is not None:
            delay = max(delay, retry_after)
        return delay

    def _sleep(
        self, delay: float, cancel_event: Optional[threading.Event], key: str
    ) -> None:
        if cancel_event is None:
            time.sleep(delay)
            return
        if cancel_event.wait(delay):
            raise OperationCancelled(f"Cancelled during backoff: {key}")
