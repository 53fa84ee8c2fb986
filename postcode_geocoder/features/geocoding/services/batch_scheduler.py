"""バッチスケジューラー（キャッシュ参照 + 有界ワーカープールでの並行解決）"""

import threading
import time
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Optional

from tqdm import tqdm

from ....shared.exceptions.errors import GeocoderError, InvalidFormat, ProviderRejected
from ....shared.logging.config import get_logger
from ..cache.resolution_cache import ResolutionCache
from ..domain import postcode
from ..domain.enums import FailureReason
from ..domain.models import (
    BatchOutcome,
    Coordinate,
    GeocodingConfig,
    GeoInput,
    ItemFailure,
    ResolvedItem,
)
from ..providers.rate_limited_client import RateLimitedProviderClient
from .aggregator import assemble

logger = get_logger(__name__)


class BatchScheduler:
    """
    郵便番号のバッチを解決するスケジューラー

    1. 入力を正規化（不正な郵便番号はそのアイテムだけ除外）
    2. キャッシュヒットは呼び出しスレッドで即時解決
    3. キャッシュミスは max_concurrent_workers 本のワーカーで解決
    4. 期限切れ時は実行中のワーカーを待たず、完了分だけ返す
    """

    def __init__(
        self,
        cache: ResolutionCache,
        client: RateLimitedProviderClient,
        config: GeocodingConfig,
        show_progress: bool = False,
    ) -> None:
        """
        Args:
            cache: 解決済み座標キャッシュ
            client: レート制限付きプロバイダークライアント
            config: エンジン設定
            show_progress: プログレスバーを表示するか
        """
        self.cache = cache
        self.client = client
        self.config = config
        self.show_progress = show_progress

        logger.info(
            f"BatchScheduler initialized: workers={config.max_concurrent_workers}, "
            f"deadline={config.batch_deadline_ms}ms, outcode_fallback={config.outcode_fallback}"
        )

    def geocode_batch(
        self, inputs: Iterable[GeoInput], deadline_ms: Optional[int] = None
    ) -> BatchOutcome:
        """
        郵便番号のバッチをジオコーディング

        アイテム単位の失敗はバッチ全体を失敗させない。

        Args:
            inputs: ジオコーディング対象のリスト
            deadline_ms: バッチ全体の期限（ミリ秒、省略時は設定値）

        Returns:
            BatchOutcome: 成功した結果（入力順）と失敗したアイテム

        Raises:
            ConfigurationError: deadline_ms が不正な場合
        """
        deadline = self.config.deadline_seconds(deadline_ms)
        started = time.monotonic()

        items = list(inputs)
        outcome = BatchOutcome(total=len(items))
        if not items:
            return outcome

        logger.info(f"Starting batch geocoding: {len(items)} items")

        # 1. 正規化（同じ郵便番号は1回だけ解決する）
        positions_by_key: dict[str, list[int]] = {}
        for position, item in enumerate(items):
            try:
                key = postcode.normalize(item.postcode)
            except InvalidFormat as e:
                logger.debug(f"Skipping item {position}: {e}")
                outcome.failures.append(
                    ItemFailure(position, item.postcode, FailureReason.INVALID_FORMAT, str(e))
                )
                continue
            positions_by_key.setdefault(key, []).append(position)

        # 2. キャッシュ参照
        coordinates: dict[str, Coordinate] = {}
        misses: list[str] = []
        for key in positions_by_key:
            cached = self.cache.get(key)
            if cached is None:
                misses.append(key)
            else:
                coordinates[key] = cached

        outcome.cache_hits = len(coordinates)
        outcome.provider_lookups = len(misses)

        # 3. キャッシュミスをワーカーに投入
        errors: dict[str, Exception] = {}
        if misses:
            remaining = max(deadline - (time.monotonic() - started), 0.0)
            outcome.deadline_exceeded = self._dispatch(misses, remaining, coordinates, errors)

        # 4. 組み立て
        resolved: list[ResolvedItem] = []
        for key, positions in positions_by_key.items():
            coordinate = coordinates.get(key)
            if coordinate is not None:
                resolved.extend(
                    ResolvedItem(position, items[position], key, coordinate)
                    for position in positions
                )
                continue

            error = errors.get(key)
            if error is None:
                reason, detail = FailureReason.DEADLINE_EXCEEDED, "batch deadline exceeded"
            else:
                reason, detail = FailureReason.from_error(error), str(error)
            outcome.failures.extend(
                ItemFailure(position, items[position].postcode, reason, detail)
                for position in positions
            )

        outcome.failures.sort(key=lambda f: f.position)
        outcome.results = assemble(resolved)

        logger.info(
            f"Batch geocoding completed: {len(outcome.results)} success, "
            f"{outcome.failed_count} failure, {outcome.cache_hits} cache hits, "
            f"{outcome.provider_lookups} provider lookups "
            f"({time.monotonic() - started:.2f}s)"
        )

        return outcome

    def _dispatch(
        self,
        misses: list[str],
        timeout: float,
        coordinates: dict[str, Coordinate],
        errors: dict[str, Exception],
    ) -> bool:
        """
        キャッシュミスをワーカープールで解決

        Returns:
            bool: 期限切れになった場合True
        """
        cancel_event = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=min(self.config.max_concurrent_workers, len(misses)),
            thread_name_prefix="geocode-worker",
        )
        futures: dict[Future, str] = {
            executor.submit(self._resolve_miss, key, cancel_event): key for key in misses
        }
        progress = tqdm(total=len(futures), desc="Geocoding", disable=not self.show_progress)

        timed_out = False
        try:
            for future in as_completed(futures, timeout=timeout):
                self._collect(future, futures[future], coordinates, errors)
                progress.update(1)

        except FuturesTimeoutError:
            timed_out = True
            # 実行中のワーカーには待機点で中断を通知し、結果は待たない
            cancel_event.set()
            for future, key in futures.items():
                if key in coordinates or key in errors:
                    continue
                if future.done() and not future.cancelled():
                    self._collect(future, key, coordinates, errors)
                else:
                    future.cancel()
            abandoned = sum(1 for key in misses if key not in coordinates and key not in errors)
            logger.warning(
                f"Batch deadline exceeded after {timeout:.2f}s: "
                f"{abandoned} lookups abandoned"
            )
        finally:
            progress.close()
            executor.shutdown(wait=False, cancel_futures=True)

        return timed_out

    def _collect(
        self,
        future: Future,
        key: str,
        coordinates: dict[str, Coordinate],
        errors: dict[str, Exception],
    ) -> None:
        try:
            coordinates[key] = future.result()
        except GeocoderError as e:
            errors[key] = e
        except Exception as e:
            logger.error(f"Unexpected error during geocoding for {key}: {e}", exc_info=True)
            errors[key] = e

    def _resolve_miss(self, key: str, cancel_event: threading.Event) -> Coordinate:
        """ワーカー: プロバイダーで解決し、キャッシュに書いてから返す"""
        try:
            coordinate = self.client.resolve(key, cancel_event)
        except ProviderRejected as rejected:
            if not self.config.outcode_fallback:
                raise
            try:
                coordinate = self._resolve_outcode(key, cancel_event)
            except ProviderRejected:
                raise rejected
            logger.info(f"Resolved {key} by outcode fallback")

        self.cache.put(key, coordinate)
        return coordinate

    def _resolve_outcode(self, key: str, cancel_event: threading.Event) -> Coordinate:
        """
        郵便区の重心で代替（廃止・新設された郵便番号向け）

        郵便区の座標は空白を含まないキー（例: "IG7"）でキャッシュするので、
        完全な郵便番号のキーとは衝突しない。
        """
        district = postcode.outcode(key)
        coordinate = self.cache.get(district)
        if coordinate is None:
            coordinate = self.client.resolve_outcode(district, cancel_event)
            self.cache.put(district, coordinate)
        return coordinate
