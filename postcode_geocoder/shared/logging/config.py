"""ロギング設定（バッチのワーカースレッドを含む全ログを1か所へ集める）"""
import logging
import sys
from typing import Optional, TextIO

# threadName でバッチのワーカーを区別
LOG_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# プロバイダーのHTTPクライアントとアクセスログ
_PROVIDER_LOGGERS = ("urllib3", "requests", "googlemaps", "google", "uvicorn.access")

_logger_configured = False


def setup_logging(
    level: str = "INFO",
    enable_cloud_logging: bool = False,
    project_id: Optional[str] = None,
    stream: Optional[TextIO] = None,
    provider_level: str = "WARNING",
) -> None:
    """
    ルートロガーを設定（2回目以降の呼び出しは無視）

    Args:
        level: ログレベル (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_cloud_logging: Cloud Loggingにも送るか
        project_id: GCPプロジェクトID (Cloud Logging有効時)
        stream: コンソール出力先（デフォルト: 標準出力）
        provider_level: プロバイダー系サードパーティロガーのレベル
    """
    global _logger_configured

    if _logger_configured:
        return

    log_level = _parse_level(level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(_console_handler(stream or sys.stdout, log_level))

    if enable_cloud_logging:
        _attach_cloud_handler(root_logger, project_id, log_level)

    quiet_level = _parse_level(provider_level, logging.WARNING)
    for name in _PROVIDER_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    _logger_configured = True
    logging.info(f"Logging configured: level={level}, provider_level={provider_level}")


def get_logger(name: str) -> logging.Logger:
    """
    指定名のロガーを取得

    Args:
        name: ロガー名（通常は__name__を指定）

    Returns:
        ロガーインスタンス
    """
    return logging.getLogger(name)


def _parse_level(level: str, default: int) -> int:
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else default


def _console_handler(stream: TextIO, log_level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _attach_cloud_handler(
    root_logger: logging.Logger, project_id: Optional[str], log_level: int
) -> None:
    # 認証情報がない環境でもコンソール出力だけで動き続ける
    try:
        from google.cloud import logging as cloud_logging

        client = cloud_logging.Client(project=project_id)
        handler = cloud_logging.handlers.CloudLoggingHandler(client)
    except Exception as e:
        logging.warning(f"Cloud Logging unavailable, console only: {e}")
        return

    handler.setLevel(log_level)
    root_logger.addHandler(handler)
    logging.info(f"Cloud Logging enabled for project {project_id}")
