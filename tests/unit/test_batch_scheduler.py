"""バッチスケジューラーのテスト"""
import time

import pytest

from postcode_geocoder.features.geocoding.domain.enums import FailureReason, Precision
from postcode_geocoder.features.geocoding.domain.models import (
    CacheEntry,
    Coordinate,
    GeocodingConfig,
    GeoInput,
)
from postcode_geocoder.features.storage.repositories.memory_coordinate_repository import (
    InMemoryCoordinateRepository,
)
from postcode_geocoder.shared.exceptions.errors import ConfigurationError, ProviderUnavailable

FAST = dict(rate_limit_per_second=100000, retry_backoff_ms=1)

VALID = {
    "SW1A 1AA": Coordinate(51.5014, -0.1419),
    "M1 1AE": Coordinate(53.4808, -2.2426),
    "B33 8TH": Coordinate(52.4862, -1.8904),
    "CR2 6XH": Coordinate(51.3396, -0.0837),
    "DN55 1PT": Coordinate(53.5228, -1.1285),
    "W1A 0AX": Coordinate(51.5186, -0.1437),
    "EC1A 1BB": Coordinate(51.5202, -0.0977),
    "LS1 4AP": Coordinate(53.7997, -1.5492),
    "G1 1XQ": Coordinate(55.8611, -4.2502),
}


def _many_postcodes(count: int) -> list[str]:
    letters = "ABDEFGHJLN"
    return [
        f"AB{i // 100 + 10} {i % 10}{letters[(i // 10) % 10]}A" for i in range(count)
    ]


def test_end_to_end_single_postcode(fake_provider, make_scheduler) -> None:
    """1件の郵便番号が座標と値つきで返る"""
    scheduler = make_scheduler(fake_provider)

    outcome = scheduler.geocode_batch([GeoInput("SW1A 1AA", 1000)])

    assert [r.to_dict() for r in outcome.results] == [
        {"postcode": "SW1A 1AA", "latitude": 51.5014, "longitude": -0.1419, "value": 1000}
    ]
    assert outcome.success is True
    assert outcome.failed_count == 0


def test_empty_postcode_yields_no_results(fake_provider, make_scheduler) -> None:
    """空文字の郵便番号は結果なし・success=False（バッチは失敗しない）"""
    scheduler = make_scheduler(fake_provider)

    outcome = scheduler.geocode_batch([GeoInput("", 1000)])

    assert outcome.results == []
    assert outcome.success is False
    assert outcome.failures[0].reason is FailureReason.INVALID_FORMAT
    assert fake_provider.call_count == 0


def test_empty_batch(fake_provider, make_scheduler) -> None:
    """空のバッチ"""
    outcome = make_scheduler(fake_provider).geocode_batch([])

    assert outcome.results == []
    assert outcome.total == 0
    assert outcome.success is False


def test_malformed_entry_is_isolated(make_provider, make_scheduler) -> None:
    """不正な郵便番号1件 + 正しい郵便番号9件で、ちょうど9件返る"""
    provider = make_provider(dict(VALID))
    scheduler = make_scheduler(provider)
    inputs = [GeoInput("NOT A POSTCODE", 1)] + [GeoInput(pc, 10) for pc in VALID]

    outcome = scheduler.geocode_batch(inputs)

    assert len(outcome.results) == 9
    assert outcome.failed_count == 1
    assert outcome.failures[0].position == 0
    assert outcome.failures[0].postcode == "NOT A POSTCODE"
    assert outcome.total == 10


def test_second_batch_hits_cache(make_provider, make_scheduler) -> None:
    """一度解決したキーは2回目のバッチでプロバイダーを呼ばない"""
    provider = make_provider(dict(VALID))
    scheduler = make_scheduler(provider)
    inputs = [GeoInput(pc.lower().replace(" ", ""), 1) for pc in VALID]

    first = scheduler.geocode_batch(inputs)
    calls_after_first = provider.call_count
    second = scheduler.geocode_batch(inputs)

    assert calls_after_first == len(VALID)
    assert provider.call_count == calls_after_first
    assert second.cache_hits == len(VALID)
    assert second.provider_lookups == 0
    assert [r.to_dict() for r in second.results] == [r.to_dict() for r in first.results]


def test_persistent_cache_shared_between_schedulers(make_provider, make_scheduler) -> None:
    """永続リポジトリを共有すれば、新しいスケジューラーでもプロバイダーを呼ばない"""
    repository = InMemoryCoordinateRepository()
    first_provider = make_provider(dict(VALID))
    make_scheduler(first_provider, repository=repository).geocode_batch(
        [GeoInput("SW1A 1AA", 1)]
    )

    second_provider = make_provider({})
    outcome = make_scheduler(second_provider, repository=repository).geocode_batch(
        [GeoInput("sw1a 1aa", 1)]
    )

    assert outcome.results[0].latitude == 51.5014
    assert second_provider.call_count == 0


def test_concurrency_bound(make_provider, make_scheduler) -> None:
    """同時実行中のプロバイダー呼び出しは max_concurrent_workers を超えない"""
    postcodes = _many_postcodes(500)
    provider = make_provider({pc: Coordinate(57.1, -2.1) for pc in postcodes}, delay=0.002)
    config = GeocodingConfig(max_concurrent_workers=5, **FAST)
    scheduler = make_scheduler(provider, config)

    outcome = scheduler.geocode_batch([GeoInput(pc, 1) for pc in postcodes])

    assert len(outcome.results) == 500
    assert provider.call_count == 500
    assert 1 <= provider.max_in_flight <= 5


def test_results_follow_input_order(make_provider, make_scheduler) -> None:
    """ワーカーの完了順に関係なく入力順で返る"""
    provider = make_provider(dict(VALID), delay=0.001)
    scheduler = make_scheduler(provider, GeocodingConfig(max_concurrent_workers=4, **FAST))
    keys = list(reversed(VALID))
    inputs = [GeoInput(pc, i) for i, pc in enumerate(keys)]

    outcome = scheduler.geocode_batch(inputs)

    assert [r.postcode for r in outcome.results] == keys
    assert [r.value for r in outcome.results] == list(range(len(keys)))


def test_duplicate_postcodes_resolved_once(fake_provider, make_scheduler) -> None:
    """同じ郵便番号は1回だけ解決し、各入力にそれぞれの値を返す"""
    scheduler = make_scheduler(fake_provider)
    inputs = [GeoInput("SW1A 1AA", 100), GeoInput("sw1a1aa", 250), GeoInput("SW1A1AA", 5.5)]

    outcome = scheduler.geocode_batch(inputs)

    assert fake_provider.call_count == 1
    assert [r.value for r in outcome.results] == [100, 250, 5.5]
    assert {r.postcode for r in outcome.results} == {"SW1A 1AA"}
    assert outcome.provider_lookups == 1


def test_deadline_returns_completed_subset(make_provider, make_scheduler) -> None:
    """期限がプロバイダーの遅延より短ければ、期限内に完了分だけ返す"""
    repository = InMemoryCoordinateRepository()
    repository.put(CacheEntry.from_coordinate("SW1A 1AA", VALID["SW1A 1AA"]))
    provider = make_provider(dict(VALID), delay=2.0)
    scheduler = make_scheduler(provider, GeocodingConfig(**FAST), repository=repository)
    inputs = [GeoInput("SW1A 1AA", 1), GeoInput("M1 1AE", 2), GeoInput("B33 8TH", 3)]

    started = time.monotonic()
    outcome = scheduler.geocode_batch(inputs, deadline_ms=200)
    elapsed = time.monotonic() - started

    assert elapsed < 1.0
    assert outcome.deadline_exceeded is True
    assert [r.postcode for r in outcome.results] == ["SW1A 1AA"]
    assert [f.reason for f in outcome.failures] == [FailureReason.DEADLINE_EXCEEDED] * 2
    assert [f.position for f in outcome.failures] == [1, 2]


def test_config_deadline_applies_by_default(make_provider, make_scheduler) -> None:
    """deadline_ms を省略すると設定値の期限を使う"""
    provider = make_provider(dict(VALID), delay=2.0)
    scheduler = make_scheduler(provider, GeocodingConfig(batch_deadline_ms=100, **FAST))

    started = time.monotonic()
    outcome = scheduler.geocode_batch([GeoInput("M1 1AE", 1)])

    assert time.monotonic() - started < 1.0
    assert outcome.success is False
    assert outcome.deadline_exceeded is True


@pytest.mark.parametrize("deadline_ms", [0, -1])
def test_invalid_deadline_raises(fake_provider, make_scheduler, deadline_ms: int) -> None:
    """不正な期限はバッチ全体のエラー（呼び出し側のバグ）"""
    scheduler = make_scheduler(fake_provider)

    with pytest.raises(ConfigurationError):
        scheduler.geocode_batch([GeoInput("SW1A 1AA", 1)], deadline_ms=deadline_ms)
    assert fake_provider.call_count == 0


def test_outcode_fallback(make_provider, make_scheduler) -> None:
    """郵便番号が見つからなければ郵便区の重心で代替し、以後はキャッシュから返す"""
    provider = make_provider({}, outcodes={"IG7": Coordinate(51.6117, 0.0891)})
    scheduler = make_scheduler(provider)

    first = scheduler.geocode_batch([GeoInput("IG7 4NY", 500)])

    assert first.results[0].precision is Precision.OUTCODE
    assert (first.results[0].latitude, first.results[0].longitude) == (51.6117, 0.0891)
    assert provider.calls == ["IG7 4NY"]
    assert provider.outcode_calls == ["IG7"]

    # 同じ郵便番号: プロバイダーを呼ばない
    scheduler.geocode_batch([GeoInput("IG7 4NY", 1)])
    # 同じ郵便区の別の郵便番号: 郵便区はキャッシュから
    other = scheduler.geocode_batch([GeoInput("IG7 5AB", 1)])

    assert provider.calls == ["IG7 4NY", "IG7 5AB"]
    assert provider.outcode_calls == ["IG7"]
    assert other.results[0].postcode == "IG7 5AB"


def test_outcode_fallback_disabled(make_provider, make_scheduler) -> None:
    """代替を無効にすると ProviderRejected で除外"""
    provider = make_provider({}, outcodes={"IG7": Coordinate(51.6117, 0.0891)})
    scheduler = make_scheduler(provider, GeocodingConfig(outcode_fallback=False, **FAST))

    outcome = scheduler.geocode_batch([GeoInput("IG7 4NY", 1)])

    assert outcome.results == []
    assert outcome.failures[0].reason is FailureReason.PROVIDER_REJECTED
    assert provider.outcode_calls == []


def test_unknown_outcode_reports_rejection(make_provider, make_scheduler) -> None:
    """郵便区も見つからなければ ProviderRejected"""
    provider = make_provider({})
    outcome = make_scheduler(provider).geocode_batch([GeoInput("ZZ9 9ZZ", 1)])

    assert outcome.failures[0].reason is FailureReason.PROVIDER_REJECTED
    assert "ZZ9 9ZZ" in outcome.failures[0].detail


def test_exhausted_retries_fail_only_that_item(make_provider, make_scheduler) -> None:
    """一時的な失敗がリトライ上限に達しても、そのアイテムだけ除外"""
    provider = make_provider(dict(VALID))
    provider.errors.extend(ProviderUnavailable("SW1A 1AA", "503") for _ in range(2))
    config = GeocodingConfig(max_concurrent_workers=1, max_retries=1, **FAST)
    scheduler = make_scheduler(provider, config)

    outcome = scheduler.geocode_batch([GeoInput("SW1A 1AA", 1), GeoInput("M1 1AE", 2)])

    assert [r.postcode for r in outcome.results] == ["M1 1AE"]
    assert outcome.failures[0].reason is FailureReason.PROVIDER_UNAVAILABLE
    assert outcome.success is True


def test_unexpected_error_is_contained(make_provider, make_scheduler) -> None:
    """想定外の例外もアイテム単位で閉じ込める"""
    provider = make_provider(dict(VALID))
    provider.errors.append(RuntimeError("bug"))
    config = GeocodingConfig(max_concurrent_workers=1, **FAST)
    scheduler = make_scheduler(provider, config)

    outcome = scheduler.geocode_batch([GeoInput("SW1A 1AA", 1), GeoInput("M1 1AE", 2)])

    assert [r.postcode for r in outcome.results] == ["M1 1AE"]
    assert outcome.failures[0].reason is FailureReason.UNEXPECTED


def test_outcome_to_dict(fake_provider, make_scheduler) -> None:
    """レスポンス用の辞書"""
    outcome = make_scheduler(fake_provider).geocode_batch(
        [GeoInput("SW1A 1AA", 1), GeoInput("bad", 2)]
    )

    data = outcome.to_dict()

    assert data["success"] is True
    assert data["total"] == 2
    assert data["failed_count"] == 1
    assert data["failures"][0]["reason"] == "invalid_format"
    assert data["deadline_exceeded"] is False
