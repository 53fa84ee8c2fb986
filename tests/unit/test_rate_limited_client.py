"""レート制限・リトライ付きクライアントのテスト"""
import threading
import time

import pytest

from postcode_geocoder.features.geocoding.domain.models import Coordinate
from postcode_geocoder.features.geocoding.providers.rate_limited_client import (
    RateLimitedProviderClient,
)
from postcode_geocoder.shared.exceptions.errors import (
    OperationCancelled,
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
    RateLimited,
)
from postcode_geocoder.shared.http.rate_limiter import RateLimiter

KEY = "SW1A 1AA"


def _client(provider, max_retries: int = 3, rate: int = 1000) -> RateLimitedProviderClient:
    return RateLimitedProviderClient(
        provider, RateLimiter(rate), max_retries=max_retries, backoff_base=0.001
    )


def test_resolves_on_first_attempt(fake_provider) -> None:
    """成功時は1回だけ呼び出す"""
    client = _client(fake_provider)
    assert client.resolve(KEY) == Coordinate(51.5014, -0.1419)
    assert fake_provider.calls == [KEY]


@pytest.mark.parametrize(
    "error",
    [
        ProviderTimeout(KEY),
        ProviderUnavailable(KEY, "503"),
        RateLimited(KEY, "429"),
    ],
)
def test_retries_transient_errors(fake_provider, error: Exception) -> None:
    """一時的な失敗はリトライして成功"""
    fake_provider.errors.extend([error, error])
    client = _client(fake_provider)

    assert client.resolve(KEY) == Coordinate(51.5014, -0.1419)
    assert len(fake_provider.calls) == 3


def test_does_not_retry_rejection(make_provider) -> None:
    """ProviderRejected はリトライしない"""
    provider = make_provider({})
    client = _client(provider)

    with pytest.raises(ProviderRejected):
        client.resolve(KEY)
    assert len(provider.calls) == 1


def test_gives_up_after_max_retries(fake_provider) -> None:
    """リトライ上限に達したら最後の例外を送出"""
    fake_provider.errors.extend(ProviderUnavailable(KEY, "503") for _ in range(10))
    client = _client(fake_provider, max_retries=2)

    with pytest.raises(ProviderUnavailable):
        client.resolve(KEY)
    assert len(fake_provider.calls) == 3


def test_zero_retries(fake_provider) -> None:
    """max_retries=0 なら1回で諦める"""
    fake_provider.errors.append(ProviderTimeout(KEY))
    client = _client(fake_provider, max_retries=0)

    with pytest.raises(ProviderTimeout):
        client.resolve(KEY)
    assert len(fake_provider.calls) == 1


def test_retries_consume_rate_limit_tokens(fake_provider) -> None:
    """リトライもレート制限のトークンを消費する"""
    fake_provider.errors.extend([ProviderTimeout(KEY), ProviderTimeout(KEY)])
    limiter = RateLimiter(10, period=60.0)
    client = RateLimitedProviderClient(fake_provider, limiter, backoff_base=0.001)

    client.resolve(KEY)

    assert limiter.available() == 7


def test_backoff_honours_retry_after(fake_provider) -> None:
    """Retry-After はバックオフの下限になる"""
    client = _client(fake_provider)
    assert client._backoff_delay(0, 2.5) == 2.5
    assert client._backoff_delay(0, None) < 0.01


def test_backoff_is_capped(fake_provider) -> None:
    """バックオフは上限（+ジッター）を超えない"""
    client = RateLimitedProviderClient(
        fake_provider, RateLimiter(10), backoff_base=1.0, backoff_max=4.0
    )
    assert client._backoff_delay(10, None) <= 4.0 * 1.1


def test_cancelled_during_backoff(fake_provider) -> None:
    """バックオフ中にキャンセルされたら OperationCancelled"""
    fake_provider.errors.extend(ProviderUnavailable(KEY) for _ in range(5))
    client = RateLimitedProviderClient(fake_provider, RateLimiter(1000), backoff_base=10.0)
    cancel_event = threading.Event()
    threading.Timer(0.05, cancel_event.set).start()

    started = time.monotonic()
    with pytest.raises(OperationCancelled):
        client.resolve(KEY, cancel_event)
    assert time.monotonic() - started < 5.0


def test_cancelled_while_waiting_for_token(fake_provider) -> None:
    """トークン待ち中にキャンセルされたらプロバイダーを呼ばない"""
    cancel_event = threading.Event()
    cancel_event.set()
    client = _client(fake_provider)

    with pytest.raises(OperationCancelled):
        client.resolve(KEY, cancel_event)
    assert fake_provider.calls == []


def test_resolve_outcode(make_provider) -> None:
    """アウトコードの解決も同じ経路を通る"""
    provider = make_provider({}, outcodes={"IG7": Coordinate(51.61, 0.09)})
    provider.errors.append(ProviderTimeout("IG7"))
    client = _client(provider)

    coordinate = client.resolve_outcode("IG7")

    assert (coordinate.latitude, coordinate.longitude) == (51.61, 0.09)
    assert provider.outcode_calls == ["IG7", "IG7"]
