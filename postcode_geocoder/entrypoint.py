"""CLIエントリーポイント"""
import argparse
import csv
import json
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .features.geocoding.domain.models import GeoInput
from .features.geocoding.services.geocoding_service import GeocodingService
from .infrastructure.config.settings import Settings
from .shared.exceptions.errors import ConfigurationError
from .shared.logging.config import get_logger, setup_logging

logger = get_logger(__name__)


def parse_postcode_arg(raw: str) -> GeoInput:
    """
    "POSTCODE=VALUE" 形式の引数を解釈（VALUE省略時は0）

    例: "SW1A 1AA=1000", "M1 1AE"
    """
    postcode, sep, value = raw.rpartition("=")
    if not sep:
        return GeoInput(postcode=raw, value=0)
    try:
        number: float = float(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid value in '{raw}'") from e
    return GeoInput(postcode=postcode, value=int(number) if number.is_integer() else number)


def read_csv_inputs(path: Path) -> list[GeoInput]:
    """
    postcode,value 列を持つCSVを読み込む

    value が空・数値でない行は 0 として扱う。
    """
    inputs = []
    with path.open(newline="", encoding="utf-8-sig") as f:
        for row in csv.DictReader(f):
            raw_value = (row.get("value") or "").strip()
            try:
                value: float = float(raw_value) if raw_value else 0
            except ValueError:
                logger.warning(f"Non-numeric value '{raw_value}' for {row.get('postcode')}, using 0")
                value = 0
            inputs.append(GeoInput(postcode=row.get("postcode") or "", value=value))
    return inputs


def main(argv: Optional[list[str]] = None) -> int:
    """
    メインエントリーポイント

    Returns:
        int: 終了コード（0: 1件以上成功, 1: 全件失敗, 2: 設定エラー）
    """
    parser = argparse.ArgumentParser(
        description="英国郵便番号ジオコーディングツール"
    )

    parser.add_argument(
        "postcodes",
        nargs="*",
        type=parse_postcode_arg,
        help='郵便番号（"POSTCODE=VALUE" で値を指定、例: "SW1A 1AA=1000"）',
    )

    parser.add_argument(
        "--csv",
        type=Path,
        help="postcode,value 列を持つCSVファイル",
    )

    parser.add_argument(
        "--deadline-ms",
        type=int,
        help="バッチ全体の期限（ミリ秒）",
    )

    parser.add_argument(
        "--env-file",
        type=str,
        default=".env",
        help="環境変数ファイルのパス（デフォルト: .env）",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="ログレベル",
    )

    parser.add_argument(
        "--progress",
        action="store_true",
        help="プログレスバーを表示",
    )

    args = parser.parse_args(argv)

    inputs: list[GeoInput] = list(args.postcodes)
    if args.csv:
        if not args.csv.is_file():
            parser.error(f"CSV file not found: {args.csv}")
        inputs.extend(read_csv_inputs(args.csv))

    if not inputs:
        parser.error("at least one postcode or --csv is required")

    try:
        settings = Settings(_env_file=args.env_file)

        if args.log_level:
            settings.log_level = args.log_level

        setup_logging(
            level=settings.log_level,
            enable_cloud_logging=settings.gcp_logging_enabled,
            project_id=settings.gcp_project_id,
            stream=sys.stderr,  # 標準出力は結果のJSON用
        )

        logger.info(f"Environment: {settings.environment}")
        logger.info(f"Geocoding {len(inputs)} postcodes with {settings.geocoding_provider}")

        with GeocodingService.from_settings(settings, show_progress=args.progress) as service:
            outcome = service.geocode_postcodes(inputs, deadline_ms=args.deadline_ms)

        print(json.dumps(outcome.to_dict(), ensure_ascii=False, indent=2))
        return 0 if outcome.success else 1

    except (ConfigurationError, ValidationError) as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130  # SIGINT
    except Exception as e:
        logger.error(f"Application failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
