"""HTTPクライアント（リトライ機能付き）"""

from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..exceptions.errors import HTTPError
from ..logging.config import get_logger
from ..utils.text import truncate_text

logger = get_logger(__name__)


class HTTPClient:
    """
    リトライ機能付きHTTPクライアント

    Features:
    - 自動リトライ（指数バックオフ、max_retries=0で無効）
    - タイムアウト設定
    - セッション管理（コネクションプールをワーカー間で共有）
    - 失敗時はステータスコード・Retry-After・タイムアウト有無をHTTPErrorに格納
    """

    def __init__(
        self,
        timeout: float = 20,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        status_forcelist: tuple[int, ...] = (500, 502, 503, 504),
        user_agent: Optional[str] = None,
        pool_maxsize: int = 10,
    ):
        """
        Args:
            timeout: リクエストタイムアウト（秒）
            max_retries: アダプターレベルの最大リトライ回数
            backoff_factor: バックオフ係数
            status_forcelist: リトライ対象のステータスコード
            user_agent: User-Agentヘッダー
            pool_maxsize: コネクションプールの最大サイズ（ワーカー数に合わせる）
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.status_forcelist = status_forcelist
        self.pool_maxsize = pool_maxsize
        self.user_agent = user_agent or "postcode-geocoder/1.0 (+lead-dashboard)"

        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """セッションを作成"""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=self.status_forcelist,
            allowed_methods=["HEAD", "GET", "POST"],
            raise_on_status=False,
        )

        adapter = HTTPAdapter(
            max_retries=retry_strategy,
            pool_connections=self.pool_maxsize,
            pool_maxsize=self.pool_maxsize,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update(
            {"User-Agent": self.user_agent, "Accept": "application/json"}
        )

        return session

    def get_json(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """
        GETリクエストを送信し、JSONボディを返す

        Args:
            url: リクエストURL
            params: クエリパラメータ
            headers: 追加ヘッダー

        Returns:
            デコード済みのJSON

        Raises:
            HTTPError: リクエスト失敗時（ステータス・タイムアウト情報付き）
        """
        response = self._request("GET", url, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as e:
            raise HTTPError(
                f"Invalid JSON from {url}: {truncate_text(response.text)}",
                status_code=response.status_code,
            ) from e

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            logger.debug(f"{method} request to {url}")
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            logger.debug(f"{method} request timed out: {url}")
            raise HTTPError(f"Timed out on {method} {url}: {e}", is_timeout=True) from e
        except requests.RequestException as e:
            logger.debug(f"{method} request failed: {url} - {e}")
            raise HTTPError(f"Failed to {method} {url}: {e}") from e

        if response.status_code >= 400:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            logger.debug(
                f"{method} request returned error: {url} (status={response.status_code})"
            )
            raise HTTPError(
                f"{method} {url} returned {response.status_code}: "
                f"{truncate_text(response.text)}",
                status_code=response.status_code,
                retry_after=retry_after,
            )

        logger.debug(f"{method} request successful: {url} (status={response.status_code})")
        return response

    def close(self) -> None:
        """セッションをクローズ"""
        if self.session:
            self.session.close()
            logger.debug("HTTP session closed")

    def __enter__(self) -> "HTTPClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-Afterヘッダー（秒数）を解釈。日付形式は未対応のためNone"""
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None
